from fastapi import APIRouter, HTTPException
from sqlmodel import Session, select
from starlette import status

from storefront.auth import CurrentUserDep
from storefront.database import DbSessionDep
from storefront.models.customer import Address
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope

class AddressCreate(RequestModel):
    first_name: str
    last_name: str
    address: str
    city: str
    state: str | None = None
    country: str
    zip_code: str = ""
    phone: str
    is_default: bool = False

class AddressUpdate(RequestModel):
    first_name: str | None = None
    last_name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    is_default: bool | None = None

REQUIRED_FIELDS = ("first_name", "last_name", "address", "city", "country", "phone")

router = APIRouter(
    prefix="/api/addresses",
    tags=["addresses"],
    responses={404: {"description": "Not found"}},
)

def unset_other_defaults(session: Session, user: User, keep_id: int | None = None):
    query = select(Address).where(Address.user_id == user.id, Address.is_default == True)
    for address in session.exec(query).all():
        if address.id != keep_id:
            address.is_default = False
            session.add(address)

def get_own_address(session: Session, user: User, address_id: int) -> Address:
    address = session.get(Address, address_id)
    if not address or address.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Address not found"
        )
    return address

@router.get("")
def list_addresses(session: DbSessionDep, current_user: CurrentUserDep):
    addresses = session.exec(
        select(Address)
        .where(Address.user_id == current_user.id)
        .order_by(Address.is_default.desc(), Address.created_at.desc())
    ).all()
    return envelope(addresses)

@router.post("", status_code=status.HTTP_201_CREATED)
def create_address(session: DbSessionDep, current_user: CurrentUserDep, body: AddressCreate):
    missing = [field for field in REQUIRED_FIELDS if not getattr(body, field).strip()]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing fields: {', '.join(missing)}"
        )

    first_address = session.exec(select(Address).where(Address.user_id == current_user.id)).first() is None
    address = Address(**body.model_dump(), user_id=current_user.id)
    # The first address becomes the default
    address.is_default = body.is_default or first_address
    if address.is_default:
        unset_other_defaults(session, current_user)
    session.add(address)
    session.commit()
    session.refresh(address)
    return envelope(address, message="Address created")

@router.put("/{address_id}")
def update_address(session: DbSessionDep, current_user: CurrentUserDep, address_id: int, body: AddressUpdate):
    address = get_own_address(session, current_user, address_id)
    update_data = body.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if value is None and key != "state":
            continue
        setattr(address, key, value)
    if update_data.get("is_default"):
        unset_other_defaults(session, current_user, keep_id=address.id)
    session.add(address)
    session.commit()
    session.refresh(address)
    return envelope(address, message="Address updated")

@router.delete("/{address_id}")
def delete_address(session: DbSessionDep, current_user: CurrentUserDep, address_id: int):
    session.delete(get_own_address(session, current_user, address_id))
    session.commit()
    return envelope(message="Address deleted")
