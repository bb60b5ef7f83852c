"""Transport-agnostic protocol layer.

Defines what goes on the wire, independent of relays and crypto:

- Kinds: one event kind per request family (21001 offer, 21002 debit, 21003 manage)
- Events: the request envelope and the response subscription filter
- Payloads: request/response bodies per family and the dispatch table

Correlation: a response carries an ``e`` tag naming the request event id
and a ``p`` tag naming the requester.
"""

from .events import Filter, SignedEvent, UnsignedEvent, new_request_event, new_response_filter
from .kinds import PROTOCOL_VERSION, VERSION_TAG, Kind, RequestFamily
from .payloads import (
    FAMILIES,
    BudgetFrequency,
    DebitFailure,
    DebitRequest,
    DebitSuccess,
    FamilySpec,
    ManageFailure,
    ManageListOffers,
    ManageSuccess,
    OfferData,
    OfferError,
    OfferReceipt,
    OfferRequest,
    OfferSuccess,
    coerce_request,
    dump_request,
    family_spec,
    load_request,
    load_response,
    load_secondary,
)

__all__ = [
    "PROTOCOL_VERSION",
    "VERSION_TAG",
    "Kind",
    "RequestFamily",
    "UnsignedEvent",
    "SignedEvent",
    "Filter",
    "new_request_event",
    "new_response_filter",
    "FAMILIES",
    "FamilySpec",
    "family_spec",
    "coerce_request",
    "dump_request",
    "load_request",
    "load_response",
    "load_secondary",
    "OfferRequest",
    "OfferSuccess",
    "OfferError",
    "OfferReceipt",
    "DebitRequest",
    "DebitSuccess",
    "DebitFailure",
    "BudgetFrequency",
    "ManageListOffers",
    "ManageSuccess",
    "ManageFailure",
    "OfferData",
]
