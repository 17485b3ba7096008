from app.models.trade_bid import TradeBid  # noqa: F401
from app.models.trade_offer import TradeOffer  # noqa: F401
from app.models.audit_log import TradeAuditRecord  # noqa: F401
from app.models.org_membership import UserMembership, OrgMember  # noqa: F401
from app.models.commodity_contribution import CommodityContribution, CollectionItem  # noqa: F401
from app.models.buyer_profile import BuyerProfile  # noqa: F401
from app.models.notification import UserNotification  # noqa: F401
from app.models.offer_submission_attempt import OfferSubmissionAttempt  # noqa: F401
