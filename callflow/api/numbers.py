"""Phone number routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response

from ..models import PhoneNumber, PhoneNumberResponse, PurchaseNumberRequest
from ..telephony.provider import NumberSearchCriteria
from .dependencies import Services, get_services, get_user_id

router = APIRouter(prefix="/numbers", tags=["numbers"])


def to_response(number: PhoneNumber) -> PhoneNumberResponse:
    data = number.to_dict()
    return PhoneNumberResponse(
        id=data["id"],
        phone_number=data["phone_number"],
        friendly_name=data["friendly_name"],
        twilio_sid=data["twilio_sid"],
        capabilities=data["capabilities"],
        status=data["status"],
        created_at=data["created_at"],
    )


@router.get("", response_model=List[PhoneNumberResponse])
async def list_numbers(
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> List[PhoneNumberResponse]:
    """List the caller's numbers."""
    return [to_response(n) for n in await services.numbers.list_numbers(user_id)]


@router.get("/available")
async def search_numbers(
    area_code: Optional[str] = Query(default=None, pattern=r"^\d{3}$"),
    contains: Optional[str] = Query(default=None, max_length=10),
    country_code: str = Query(default="US", min_length=2, max_length=2),
    limit: int = Query(default=20, ge=1, le=50),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Search numbers available for purchase."""
    criteria = NumberSearchCriteria(
        country_code=country_code.upper(),
        area_code=area_code,
        contains=contains,
        limit=limit,
    )
    available = await services.numbers.search(criteria)
    return {"numbers": [n.to_dict() for n in available], "total": len(available)}


@router.post("/purchase", response_model=PhoneNumberResponse, status_code=201)
async def purchase_number(
    request: PurchaseNumberRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> PhoneNumberResponse:
    """Buy a number and add it to the caller's account."""
    number = await services.numbers.purchase(
        user_id,
        request.phone_number,
        friendly_name=request.friendly_name,
    )
    return to_response(number)


@router.delete("/{number_id}", status_code=204)
async def release_number(
    number_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    """Release a number. Flows bound to it are deleted with it."""
    await services.numbers.release(user_id, number_id)
    return Response(status_code=204)
