"""Request/response payload shapes and the per-family dispatch table.

Payloads travel as compact JSON inside the encrypted envelope content.
Every family has a closed set of shapes; anything else is rejected as
``MalformedPayload`` instead of being passed through untyped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..errors import MalformedPayload, RequestValidationError
from .kinds import Kind, RequestFamily

DESCRIPTION_MAX_LENGTH = 100
DEFAULT_OFFER_TIMEOUT_SECONDS = 30.0


class ErrorRange(BaseModel):
    """Accepted range for a rejected value."""

    min: int
    max: int


class ErrorDelta(BaseModel):
    """Clock skew between the request timestamp and the service."""

    max_delta_ms: int
    actual_delta_ms: int


# =============================================================================
# Offer (kind 21001)
# =============================================================================


class OfferRequest(BaseModel):
    """Ask the offer owner for an invoice."""

    offer: str
    amount_sats: int | None = Field(default=None, ge=0)
    zap: str | None = None
    payer_data: Any = None
    expires_in_seconds: int | None = Field(default=None, ge=0)
    description: str | None = None


class OfferSuccess(BaseModel):
    bolt11: str


class OfferError(BaseModel):
    code: int
    error: str
    range: ErrorRange | None = None


class OfferReceipt(BaseModel):
    """Sent after the invoice from an offer response has been paid."""

    res: Literal["ok"]


OfferResponse = OfferSuccess | OfferError

# Receipts follow a paid invoice; relays may also redeliver the invoice response.
OfferSecondary = OfferReceipt | OfferSuccess | OfferError


# =============================================================================
# Debit (kind 21002)
# =============================================================================


class BudgetFrequency(BaseModel):
    number: int = Field(gt=0)
    unit: Literal["day", "week", "month"]


class DebitRequest(BaseModel):
    """Ask the wallet to pay an invoice, grant a budget, or grant full access."""

    pointer: str | None = None
    amount_sats: int | None = Field(default=None, ge=0)
    bolt11: str | None = None
    frequency: BudgetFrequency | None = None


class DebitSuccess(BaseModel):
    res: Literal["ok"]
    preimage: str | None = None


class DebitFailure(BaseModel):
    res: Literal["GFY"]
    error: str
    code: int


DebitResponse = Annotated[DebitSuccess | DebitFailure, Field(discriminator="res")]


# =============================================================================
# Manage (kind 21003)
# =============================================================================


class OfferFields(BaseModel):
    label: str
    price_sats: int = Field(default=0, ge=0)
    callback_url: str = ""
    payer_data: list[str] = Field(default_factory=list)


class OfferData(OfferFields):
    """An offer as returned by the managing service."""

    id: str
    noffer: str


class OfferFieldsBody(BaseModel):
    fields: OfferFields


class OfferUpdateBody(BaseModel):
    id: str
    fields: OfferFields


class OfferIdBody(BaseModel):
    id: str


class ManageCreateOffer(BaseModel):
    resource: Literal["offer"] = "offer"
    action: Literal["create"] = "create"
    pointer: str | None = None
    offer: OfferFieldsBody


class ManageUpdateOffer(BaseModel):
    resource: Literal["offer"] = "offer"
    action: Literal["update"] = "update"
    offer: OfferUpdateBody


class ManageDeleteOffer(BaseModel):
    resource: Literal["offer"] = "offer"
    action: Literal["delete"] = "delete"
    offer: OfferIdBody


class ManageGetOffer(BaseModel):
    resource: Literal["offer"] = "offer"
    action: Literal["get"] = "get"
    offer: OfferIdBody


class ManageListOffers(BaseModel):
    resource: Literal["offer"] = "offer"
    action: Literal["list"] = "list"
    pointer: str | None = None


ManageRequest = Annotated[
    ManageCreateOffer | ManageUpdateOffer | ManageDeleteOffer | ManageGetOffer | ManageListOffers,
    Field(discriminator="action"),
]


class ManageSuccess(BaseModel):
    res: Literal["ok"]
    resource: Literal["offer"]
    details: OfferData | list[OfferData] | None = None


class ManageFailure(BaseModel):
    res: Literal["GFY"]
    error: str
    code: int
    delta: ErrorDelta | None = None
    retry_after: int | None = None
    field: str | None = None
    range: ErrorRange | None = None


ManageResponse = Annotated[ManageSuccess | ManageFailure, Field(discriminator="res")]


# =============================================================================
# Dispatch table
# =============================================================================


@dataclass(frozen=True)
class FamilySpec:
    """Everything the correlator needs to know about one request family."""

    family: RequestFamily
    kind: Kind
    request: TypeAdapter[Any]
    response: TypeAdapter[Any]
    secondary: TypeAdapter[Any]
    default_timeout_seconds: float | None = None


FAMILIES: dict[RequestFamily, FamilySpec] = {
    RequestFamily.OFFER: FamilySpec(
        family=RequestFamily.OFFER,
        kind=Kind.OFFER,
        request=TypeAdapter(OfferRequest),
        response=TypeAdapter(OfferResponse),
        secondary=TypeAdapter(OfferSecondary),
        default_timeout_seconds=DEFAULT_OFFER_TIMEOUT_SECONDS,
    ),
    RequestFamily.DEBIT: FamilySpec(
        family=RequestFamily.DEBIT,
        kind=Kind.DEBIT,
        request=TypeAdapter(DebitRequest),
        response=TypeAdapter(DebitResponse),
        secondary=TypeAdapter(DebitResponse),
    ),
    RequestFamily.MANAGE: FamilySpec(
        family=RequestFamily.MANAGE,
        kind=Kind.MANAGE,
        request=TypeAdapter(ManageRequest),
        response=TypeAdapter(ManageResponse),
        secondary=TypeAdapter(ManageResponse),
    ),
}


def family_spec(family: RequestFamily | str) -> FamilySpec:
    return FAMILIES[RequestFamily(family)]


def coerce_request(family: RequestFamily | str, data: BaseModel | dict[str, Any]) -> BaseModel:
    """Turn *data* into the family's request model and check family rules.

    Raises:
        RequestValidationError: The body does not fit the family.
    """
    spec = family_spec(family)
    try:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_none=True)
        request = spec.request.validate_python(data)
    except ValidationError as e:
        raise RequestValidationError(f"invalid {spec.family.value} request: {e}") from e

    if isinstance(request, OfferRequest) and request.description is not None:
        if len(request.description) > DESCRIPTION_MAX_LENGTH:
            raise RequestValidationError(
                f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters"
            )
    return request


def dump_request(request: BaseModel) -> str:
    """Serialize a request body to compact JSON, dropping unset optionals."""
    return request.model_dump_json(exclude_none=True)


def _load(adapter: TypeAdapter[Any], text: str | bytes, what: str) -> Any:
    try:
        return adapter.validate_json(text)
    except ValidationError as e:
        raise MalformedPayload(f"{what}: {e}") from e


def load_request(family: RequestFamily | str, text: str | bytes) -> BaseModel:
    spec = family_spec(family)
    return _load(spec.request, text, f"{spec.family.value} request")


def load_response(family: RequestFamily | str, text: str | bytes) -> BaseModel:
    spec = family_spec(family)
    return _load(spec.response, text, f"{spec.family.value} response")


def load_secondary(family: RequestFamily | str, text: str | bytes) -> BaseModel:
    spec = family_spec(family)
    return _load(spec.secondary, text, f"{spec.family.value} secondary response")


# =============================================================================
# Request constructors
# =============================================================================


def full_access_request() -> DebitRequest:
    return DebitRequest()


def payment_request(bolt11: str, amount_sats: int | None = None) -> DebitRequest:
    return DebitRequest(bolt11=bolt11, amount_sats=amount_sats)


def budget_request(frequency: BudgetFrequency, amount_sats: int) -> DebitRequest:
    return DebitRequest(amount_sats=amount_sats, frequency=frequency)


def create_offer_request(
    label: str,
    price_sats: int = 0,
    callback_url: str = "",
    payer_data: list[str] | None = None,
    pointer: str | None = None,
) -> ManageCreateOffer:
    fields = OfferFields(
        label=label,
        price_sats=price_sats,
        callback_url=callback_url,
        payer_data=payer_data or [],
    )
    return ManageCreateOffer(pointer=pointer, offer=OfferFieldsBody(fields=fields))


def update_offer_request(offer: OfferData) -> ManageUpdateOffer:
    fields = OfferFields(
        label=offer.label,
        price_sats=offer.price_sats,
        callback_url=offer.callback_url,
        payer_data=offer.payer_data,
    )
    return ManageUpdateOffer(offer=OfferUpdateBody(id=offer.id, fields=fields))


def delete_offer_request(offer_id: str) -> ManageDeleteOffer:
    return ManageDeleteOffer(offer=OfferIdBody(id=offer_id))


def get_offer_request(offer_id: str) -> ManageGetOffer:
    return ManageGetOffer(offer=OfferIdBody(id=offer_id))


def list_offers_request(pointer: str | None = None) -> ManageListOffers:
    return ManageListOffers(pointer=pointer)
