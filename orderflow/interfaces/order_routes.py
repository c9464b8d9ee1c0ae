import logging

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from orderflow.domain import errors
from orderflow.domain.enums import Role, normalize_role
from orderflow.domain.schemas import (ClaimRequest, LocationRequest, OrderOut, PlaceOrderRequest,
                                      PresenceRequest, TransitionRequest, WalletOut,
                                      WalletOwnerRef, WalletTransactionOut)

router = APIRouter()
logger = logging.getLogger(__name__)

# Endpoints are plain `def`: Starlette runs them on its worker thread pool,
# which is where the blocking DB / Redis calls belong.

HTTP_STATUS = {
    errors.ValidationFailed: 400,
    errors.Forbidden: 403,
    errors.NotFound: 404,
    errors.InvalidTransition: 409,
    errors.AlreadyAssigned: 409,
    errors.NotReady: 409,
    errors.WalletOperationFailed: 500,
}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(errors.OrderFlowError)
    async def orderflow_error(request: Request, exc: errors.OrderFlowError):
        logger.info(f"⚠️ {request.method} {request.url.path} → {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=HTTP_STATUS.get(type(exc), 400),
            content={"success": False, "error": exc.code, "message": exc.message},
        )


def _orchestrator(request: Request):
    return request.app.state.orchestrator


def _order(order) -> dict:
    return OrderOut.model_validate(order).model_dump(mode="json", by_alias=True)


def _owner(role: str, owner_id: int) -> WalletOwnerRef:
    return WalletOwnerRef(owner_type=normalize_role(role), owner_id=owner_id)


# ---------------------------------------------------------
# Customer / restaurant
# ---------------------------------------------------------

@router.post("/orders")
def place_order(payload: PlaceOrderRequest, request: Request):
    order = _orchestrator(request).place_order(
        payload.customer_id, payload.restaurant_id, payload.items,
        address_id=payload.address_id, customer_phone=payload.customer_phone,
    )
    return {"success": True, "message": "Order created successfully", "order": _order(order)}


@router.post("/orders/{order_id}/status")
def transition_order(order_id: int, payload: TransitionRequest, request: Request):
    order = _orchestrator(request).transition_order(
        order_id, payload.actor_role, payload.actor_id, payload.status
    )
    return {"success": True, "order": _order(order)}


def _orders_for(request: Request, role, actor_id: int, active: bool) -> dict:
    orders = _orchestrator(request).list_orders_for(role, actor_id, active_only=active)
    return {"success": True, "orders": [_order(o) for o in orders]}


@router.get("/customers/{customer_id}/orders")
def customer_orders(customer_id: int, request: Request, active: bool = False):
    return _orders_for(request, Role.CUSTOMER, customer_id, active)


@router.get("/restaurants/{restaurant_id}/orders")
def restaurant_orders(restaurant_id: int, request: Request, active: bool = False):
    return _orders_for(request, Role.RESTAURANT, restaurant_id, active)


@router.get("/delivery/{partner_id}/orders")
def partner_orders(partner_id: int, request: Request, active: bool = False):
    return _orders_for(request, Role.DELIVERY_PARTNER, partner_id, active)


# ---------------------------------------------------------
# Delivery partner
# ---------------------------------------------------------

@router.get("/delivery/orders/available")
def available_orders(request: Request):
    summaries = _orchestrator(request).list_available_orders()
    return {
        "success": True,
        "orders": [s.model_dump(mode="json", by_alias=True) for s in summaries],
    }


@router.post("/delivery/orders/{order_id}/accept")
def accept_order(order_id: int, payload: ClaimRequest, request: Request):
    order = _orchestrator(request).claim_order(order_id, payload.partner_id)
    return {"success": True, "order": _order(order)}


@router.post("/delivery/presence")
def set_presence(payload: PresenceRequest, request: Request):
    _orchestrator(request).set_partner_presence(
        payload.partner_id, payload.online, payload.location, available=payload.is_available
    )
    return {"success": True, "online": payload.online, "isAvailable": payload.is_available}


@router.post("/delivery/location")
def update_location(payload: LocationRequest, request: Request):
    broadcast = _orchestrator(request).update_partner_location(
        payload.partner_id, payload.location, payload.order_id
    )
    return {
        "success": True,
        "message": "Location updated successfully",
        "broadcast": broadcast,
        "location": payload.location.model_dump(by_alias=True),
    }


@router.get("/delivery/{partner_id}/earnings")
def earnings(partner_id: int, request: Request):
    summary = _orchestrator(request).partner_earnings(partner_id)
    return {"success": True, "earnings": summary.model_dump(mode="json", by_alias=True)}


# ---------------------------------------------------------
# Wallets (read side)
# ---------------------------------------------------------

@router.get("/wallets/{role}/{owner_id}")
def get_wallet(role: str, owner_id: int, request: Request):
    wallet = _orchestrator(request).get_wallet(_owner(role, owner_id))
    return {"success": True, "wallet": WalletOut.model_validate(wallet).model_dump(mode="json", by_alias=True)}


@router.get("/wallets/{role}/{owner_id}/transactions")
def wallet_transactions(role: str, owner_id: int, request: Request, page: int = 1, limit: int = 50):
    result = _orchestrator(request).list_wallet_transactions(_owner(role, owner_id), page, limit)
    return {
        "success": True,
        "transactions": [
            WalletTransactionOut.model_validate(t).model_dump(mode="json", by_alias=True)
            for t in result["transactions"]
        ],
        "pagination": result["pagination"],
    }
