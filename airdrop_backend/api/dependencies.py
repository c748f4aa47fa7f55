# airdrop_backend/api/dependencies.py

# Component wiring and the FastAPI dependencies the routes use.
# The component graph is built once in the app lifespan and kept on
# app.state.services; routes pull what they need through get_services().

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Header, Request

from ..config.settings import Settings
from ..db.mongo_client import MongoStore
from ..features.airdrop.claims import AirdropClaims
from ..features.airdrop.distribution import HttpClientFactory, RewardDistributor
from ..features.airdrop.eligibility import PurchaseEligibility
from ..features.ledger import CompletionEvaluator, InteractionLedger
from ..features.referral.service import ReferralService
from ..features.subscription.service import SubscriptionService
from ..features.twitter.actions import SocialActions
from ..features.twitter.client import SessionFactory, TwitterClient
from ..models.referral import RewardCaps
from ..models.twitter import Credentials
from ..shared import errors
from ..shared.errors import AirdropError, StorageUnavailable


@dataclass
class Services:
    settings: Settings
    store: MongoStore
    ledger: InteractionLedger
    completion: CompletionEvaluator
    actions: SocialActions
    eligibility: PurchaseEligibility
    referral: ReferralService
    distributor: RewardDistributor
    claims: AirdropClaims
    subscriptions: SubscriptionService

    @property
    def reward_caps(self) -> RewardCaps:
        return RewardCaps(
            cap_for_buyer=self.settings.MAX_REWARD_FOR_BUYER,
            cap_for_non_buyer=self.settings.MAX_REWARD_FOR_NON_BUYER,
        )


def build_services(
    settings: Settings,
    store: MongoStore,
    twitter_session_factory: Optional[SessionFactory] = None,
    http_client_factory: Optional[HttpClientFactory] = None,
) -> Services:
    ledger = InteractionLedger(store, ttl=timedelta(seconds=settings.INTERACTION_TTL_SECONDS))
    eligibility = PurchaseEligibility(store, settings, http_client_factory, ledger=ledger)
    referral = ReferralService(
        store,
        code_length=settings.PROMOTION_CODE_LENGTH,
        eligibility=eligibility,
        ledger=ledger,
    )
    return Services(
        settings=settings,
        store=store,
        ledger=ledger,
        completion=CompletionEvaluator(ledger),
        actions=SocialActions(TwitterClient(settings, twitter_session_factory), ledger),
        eligibility=eligibility,
        referral=referral,
        distributor=RewardDistributor(settings, referral, ledger, http_client_factory),
        claims=AirdropClaims(store, ledger=ledger),
        subscriptions=SubscriptionService(store, ledger=ledger),
    )


# --- FastAPI dependencies ---
def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise StorageUnavailable(message="Service is starting up or failed to initialize.")
    return services


def get_credentials(
    x_access_token: Optional[str] = Header(default=None),
    x_access_token_secret: Optional[str] = Header(default=None),
) -> Credentials:
    """Provider token pair forwarded by the session layer in front of this service."""
    if not x_access_token or not x_access_token_secret:
        raise AirdropError(errors.NO_SESSION_FOUND, http_status=401)
    return Credentials(access_token=x_access_token, access_token_secret=x_access_token_secret)
