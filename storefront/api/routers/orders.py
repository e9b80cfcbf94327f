# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from storefront.api.deps import (
    AuthContext,
    get_auth,
    get_fulfillment,
    get_reconciler,
    require_admin,
    to_http,
)
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    ConfirmIn,
    ConfirmOut,
    OrderCreate,
    OrderOut,
    OrderPageOut,
    PaymentOpenIn,
    PaymentDetailsOut,
    PlacedOrderOut,
    RefundIn,
    RefundOut,
    StatusIn,
)
from storefront.payments.port import RequiresAction
from storefront.services.order_fulfillment import OrderFulfillment, OrderItem
from storefront.services.payment_reconciler import PaymentReconciler

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=PlacedOrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    auth: AuthContext = Depends(get_auth),
    svc: OrderFulfillment = Depends(get_fulfillment),
):
    """
    Tworzy zamówienie z aktywnego koszyka (albo z podanych pozycji)
    i intent płatności na kwotę końcową.
    """
    items = None
    if payload.cart_items is not None:
        items = [OrderItem(product_id=i.product_id, quantity=i.quantity) for i in payload.cart_items]
    try:
        placed = svc.create_order(
            auth.user_id,
            items,
            payload.payment_method,
            shipping_address=payload.shipping_address,
            billing_address=payload.billing_address,
        )
    except StorefrontError as e:
        raise to_http(e)
    return {"order": placed.order, "payment": placed.intent}


@router.get("/", response_model=OrderPageOut)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    auth: AuthContext = Depends(get_auth),
    svc: OrderFulfillment = Depends(get_fulfillment),
):
    result = svc.list_user_orders(auth.user_id, page, limit)
    return {
        "orders": result.orders,
        "total_pages": result.total_pages,
        "current_page": result.current_page,
        "total_orders": result.total_orders,
    }


# webhook przed /{order_id}, body musi dojsc nietkniete (podpis)
@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    svc: PaymentReconciler = Depends(get_reconciler),
):
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Stripe signature is required")
    payload = await request.body()
    try:
        svc.handle_webhook(payload, stripe_signature)
    except StorefrontError as e:
        raise to_http(e)
    return {"received": True}


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    auth: AuthContext = Depends(get_auth),
    svc: OrderFulfillment = Depends(get_fulfillment),
):
    try:
        return svc.get_order(order_id, None if auth.is_admin else auth.user_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/{order_id}/confirm", response_model=ConfirmOut)
def confirm_order(
    order_id: int,
    payload: ConfirmIn,
    auth: AuthContext = Depends(get_auth),
    svc: PaymentReconciler = Depends(get_reconciler),
):
    try:
        svc.fulfillment.get_order(order_id, auth.user_id)
        result = svc.confirm_order(order_id, payload.payment_intent_id, payload.payment_method_id)
    except StorefrontError as e:
        raise to_http(e)

    if result.confirmed:
        message = "Order is already confirmed" if result.already_confirmed else "Order confirmed successfully"
        return {"message": message, "order": result.order}
    if isinstance(result.outcome, RequiresAction):
        return {
            "message": "Additional action required for payment",
            "order": result.order,
            "requires_action": True,
            "client_secret": result.outcome.client_secret,
        }
    raise HTTPException(status_code=402, detail=getattr(result.outcome, "reason", "Payment not completed"))


@router.put("/{order_id}/status", response_model=OrderOut)
def update_status(
    order_id: int,
    payload: StatusIn,
    admin: AuthContext = Depends(require_admin),
    svc: OrderFulfillment = Depends(get_fulfillment),
):
    try:
        return svc.update_order_status(order_id, payload.status, actor_id=admin.user_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/{order_id}/refund", response_model=RefundOut)
def refund_order(
    order_id: int,
    payload: RefundIn,
    _admin: AuthContext = Depends(require_admin),
    svc: PaymentReconciler = Depends(get_reconciler),
):
    try:
        result = svc.refund_payment(order_id, payload.amount)
    except StorefrontError as e:
        raise to_http(e)
    return {
        "message": "Refund processed successfully",
        "refund_id": result.refund.refund_id,
        "status": result.refund.status,
        "amount": result.refund.amount,
        "order": result.order,
    }


@router.post("/{order_id}/payment", response_model=PlacedOrderOut, status_code=201)
def open_payment(
    order_id: int,
    payload: PaymentOpenIn,
    auth: AuthContext = Depends(get_auth),
    svc: OrderFulfillment = Depends(get_fulfillment),
):
    # ponowienie intentu, gdy procesor padl przy tworzeniu zamowienia (502)
    try:
        intent = svc.open_payment(order_id, auth.user_id, payload.payment_method)
        return {"order": svc.get_order(order_id), "payment": intent}
    except StorefrontError as e:
        raise to_http(e)


@router.get("/{order_id}/payment", response_model=PaymentDetailsOut)
def payment_details(
    order_id: int,
    auth: AuthContext = Depends(get_auth),
    svc: PaymentReconciler = Depends(get_reconciler),
):
    try:
        order, intent = svc.get_payment_details(order_id, None if auth.is_admin else auth.user_id)
    except StorefrontError as e:
        raise to_http(e)
    return {
        "order": order,
        "intent_id": intent.intent_id,
        "status": intent.status,
        "amount": intent.amount,
        "currency": intent.currency,
        "payment_method": intent.payment_method,
        "description": intent.description,
    }
