#storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.api.deps import AuthContext, get_auth, get_cart_store, require_admin, to_http
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    AbandonedPageOut,
    CartEntryOut,
    CartOut,
    ItemIn,
    QuantityIn,
    RestoreIn,
    WinBackOut,
)
from storefront.services.cart_store import CartStore

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=CartOut)
def get_cart(auth: AuthContext = Depends(get_auth), store: CartStore = Depends(get_cart_store)):
    return {"user_id": auth.user_id, "items": store.list_active(auth.user_id)}


@router.post("/items", response_model=CartEntryOut, status_code=201)
def add_item(
    payload: ItemIn,
    auth: AuthContext = Depends(get_auth),
    store: CartStore = Depends(get_cart_store),
):
    try:
        return store.add_item(auth.user_id, payload.product_id, payload.quantity)
    except StorefrontError as e:
        raise to_http(e)


@router.put("/items/{entry_id}", response_model=CartEntryOut)
def update_item(
    entry_id: int,
    payload: QuantityIn,
    auth: AuthContext = Depends(get_auth),
    store: CartStore = Depends(get_cart_store),
):
    try:
        return store.update_quantity(auth.user_id, entry_id, payload.quantity)
    except StorefrontError as e:
        raise to_http(e)


@router.delete("/items/{entry_id}", status_code=204)
def remove_item(
    entry_id: int,
    auth: AuthContext = Depends(get_auth),
    store: CartStore = Depends(get_cart_store),
):
    try:
        store.remove(auth.user_id, entry_id)
    except StorefrontError as e:
        raise to_http(e)


@router.get("/abandoned", response_model=list[CartEntryOut])
def list_abandoned(auth: AuthContext = Depends(get_auth), store: CartStore = Depends(get_cart_store)):
    return store.list_abandoned(auth.user_id)


@router.post("/abandoned/restore")
def restore_abandoned(
    payload: RestoreIn,
    auth: AuthContext = Depends(get_auth),
    store: CartStore = Depends(get_cart_store),
):
    try:
        return {"restored": store.restore_abandoned(auth.user_id, payload.product_id)}
    except StorefrontError as e:
        raise to_http(e)


@router.post("/abandoned/discount", response_model=WinBackOut)
def claim_discount(auth: AuthContext = Depends(get_auth), store: CartStore = Depends(get_cart_store)):
    try:
        win_back = store.claim_win_back_discount(auth.user_id)
    except StorefrontError as e:
        raise to_http(e)
    if not win_back.percent:
        raise HTTPException(status_code=404, detail="No abandoned cart items")
    return {"discount_percent": win_back.percent, "restored": win_back.restored}


@router.get("/admin/abandoned", response_model=AbandonedPageOut)
def admin_abandoned(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _admin: AuthContext = Depends(require_admin),
    store: CartStore = Depends(get_cart_store),
):
    result = store.list_all_abandoned(page, limit)
    return {
        "carts": result.entries,
        "total_pages": result.total_pages,
        "current_page": result.current_page,
        "total_carts": result.total_entries,
    }
