from fastapi import APIRouter, Depends, HTTPException, status

from pricewatch.core.errors import InvalidAlertError
from pricewatch.dependencies.services import get_alert_store
from pricewatch.schemas.alert import AlertCreate, AlertCreatedResponse, AlertResponse
from pricewatch.services.alert_store import AlertStore

router = APIRouter(prefix="/alerts", tags=["Price Alerts"])


# CREATE
@router.post("", response_model=AlertCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_alert(data: AlertCreate, store: AlertStore = Depends(get_alert_store)):
    try:
        alert = store.create(data.token, data.target_price, data.email)
    except InvalidAlertError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"field": e.field, "error": e.reason},
        )
    return AlertCreatedResponse(alert=AlertResponse.model_validate(alert))


# GET BY ID
@router.get("/{alert_id}", response_model=AlertResponse)
def get_alert(alert_id: int, store: AlertStore = Depends(get_alert_store)):
    alert = store.get(alert_id)
    if not alert:
        raise HTTPException(404, "Alert not found")
    return alert
