from .providers import Provider, ProviderLocation, ProviderStaff
from .customers import Customer
from .catalog import (
    Offering, ServiceAddon, AddonLocation, Product, ServicePackage, PackageLocation,
    Resource, OfferingResource,
)
from .promotions import Promotion, MembershipPlan, UserMembership, LoyaltyRule
from .settings import PlatformFeeConfig, PlatformSetting, ProviderSettings, ProviderSubscription
from .bookings import (
    Booking, BookingServiceLine, BookingAddon, BookingProduct,
    GroupBooking, GroupParticipant, GroupParticipantService,
    ResourceAssignment, BookingEvent, BookingSequence,
)

__all__ = [
    'Provider', 'ProviderLocation', 'ProviderStaff',
    'Customer',
    'Offering', 'ServiceAddon', 'AddonLocation', 'Product', 'ServicePackage', 'PackageLocation',
    'Resource', 'OfferingResource',
    'Promotion', 'MembershipPlan', 'UserMembership', 'LoyaltyRule',
    'PlatformFeeConfig', 'PlatformSetting', 'ProviderSettings', 'ProviderSubscription',
    'Booking', 'BookingServiceLine', 'BookingAddon', 'BookingProduct',
    'GroupBooking', 'GroupParticipant', 'GroupParticipantService',
    'ResourceAssignment', 'BookingEvent', 'BookingSequence',
]
