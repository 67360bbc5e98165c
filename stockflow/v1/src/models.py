from typing import Optional, List, Literal, Any
from pydantic import BaseModel, Field

# Enum-like types
Environment = Literal["sandbox", "production"]
ListingSource = Literal["inventory", "trading"]
InventoryStatus = Literal["In Stock", "Out of Stock"]


# --------------------------------------------------- #
# Tokens                                              #
# --------------------------------------------------- #


class EbayTokenData(BaseModel):
    access_token: str
    expires_in: int = 7200
    refresh_token: Optional[str] = None
    refresh_token_expires_in: int = 47304000


class RefreshEbayTokenData(BaseModel):
    data: Optional[EbayTokenData]
    error: Optional[str]


class EbayConnection(BaseModel):
    """A usable access token for one connection. Best effort: it may be stale."""

    connectionId: str
    accessToken: str
    isSandbox: bool


# --------------------------------------------------- #
# Connections & selection                             #
# --------------------------------------------------- #


class ISelectedListing(BaseModel):
    id: str
    offerId: Optional[str] = None
    listingId: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    status: Optional[str] = None
    source: ListingSource = "inventory"


class IConnection(BaseModel):
    connectionId: str
    userId: str
    accessToken: Optional[str] = None
    refreshToken: Optional[str] = None
    expiresAt: Optional[int] = None
    refreshExpiresAt: Optional[int] = None
    connectedAt: Optional[int] = None
    environment: Optional[Environment] = None
    selectedOfferIds: List[str] = Field(default_factory=list)
    selectedListingIds: List[str] = Field(default_factory=list)
    selectedListings: List[dict] = Field(default_factory=list)
    lastAutoOrderSyncAt: Optional[str] = None


class ISelection(BaseModel):
    selectedOfferIds: List[str] = Field(default_factory=list)
    selectedListingIds: List[str] = Field(default_factory=list)
    selectedListings: List[dict] = Field(default_factory=list)


class IConnectionSummary(BaseModel):
    id: str
    connectedAt: Optional[Any] = None
    environment: Environment = "sandbox"


# --------------------------------------------------- #
# Orders                                              #
# --------------------------------------------------- #


class IBuyer(BaseModel):
    email: Optional[str] = None
    fullName: Optional[str] = None


class ILineItem(BaseModel):
    lineItemId: Optional[str] = None
    legacyItemId: Optional[str] = None
    sku: Optional[str] = None
    title: Optional[str] = None
    quantity: Optional[int] = None
    lineItemFulfillmentStatus: Optional[str] = None


class ISyncedOrder(BaseModel):
    orderId: str
    connectionId: str
    creationDate: Optional[str] = None
    lastModifiedDate: Optional[str] = None
    orderFulfillmentStatus: Optional[str] = None
    orderPaymentStatus: Optional[str] = None
    buyer: Optional[IBuyer] = None
    lineItems: List[ILineItem]
    totalLineItems: int
    partialLineItems: bool
    syncedAt: str


class SyncOrdersResult(BaseModel):
    ok: bool
    totalFetched: int = 0
    totalSaved: int = 0
    message: Optional[str] = None
    error: Optional[str] = None


class AutoSyncResult(BaseModel):
    scanned: int = 0
    attempted: int = 0
    syncedConnections: int = 0
    totalFetched: int = 0
    totalSaved: int = 0
    errors: List[str] = Field(default_factory=list)


# --------------------------------------------------- #
# Webhooks                                            #
# --------------------------------------------------- #


class IWebhookHeaders(BaseModel):
    topic: Optional[str] = None
    deliveryId: Optional[str] = None


class IWebhookEvent(BaseModel):
    eventId: str
    createdAt: str
    headers: IWebhookHeaders
    payload: dict = Field(default_factory=dict)
    processedAt: Optional[str] = None
    syncResult: Optional[dict] = None


# --------------------------------------------------- #
# Request bodies                                      #
# --------------------------------------------------- #


class FulfillmentLineItem(BaseModel):
    lineItemId: str
    quantity: int


class FulfillmentBody(BaseModel):
    orderId: Optional[str] = None
    lineItems: List[Any] = Field(default_factory=list)
    shippingCarrierCode: Optional[str] = None
    trackingNumber: Optional[str] = None
    shippedDate: Optional[str] = None
    userId: Optional[str] = None


class SyncInventoryBody(BaseModel):
    userId: Optional[str] = None
    connectionId: Optional[str] = None
    offerId: Optional[str] = None
    listingId: Optional[str] = None
    newQuantity: Optional[float] = None


class RefreshInventoryBody(BaseModel):
    userId: Optional[str] = None
    connectionId: Optional[str] = None
