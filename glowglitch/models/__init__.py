# Import models here so Alembic can discover metadata.
from glowglitch.models.user import User  # noqa: F401
from glowglitch.models.product import Product  # noqa: F401

# Creator programme
from glowglitch.models.creator import Creator  # noqa: F401
from glowglitch.models.referral import ReferralClick, ReferralLink  # noqa: F401
from glowglitch.models.commission import CommissionTransaction, CreatorPayout  # noqa: F401

# Commerce
from glowglitch.models.order import Order  # noqa: F401
from glowglitch.models.cart import Cart  # noqa: F401

# Email marketing
from glowglitch.models.marketing import (  # noqa: F401
    CustomerSegment,
    EmailCampaign,
    EmailEvent,
    EmailTemplate,
    EmailTrigger,
)
