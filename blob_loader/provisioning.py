"""Scenario setup: signing identity, funding, credit and bucket.

Each function turns any client failure into the matching ScenarioAbort
subclass, so the runner can stop that scenario without touching others.
"""

import logging
from typing import Optional

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.errors import AccountError, BucketError, CreditError
from blob_loader.models import ScenarioSpec, TestPlan

logger = logging.getLogger(__name__)


def resolve_account(
    client: ChainClient,
    scenario: ScenarioSpec,
    plan: Optional[TestPlan] = None,
) -> Identity:
    """Resolve the signing identity: scenario key first, then the plan default.

    Raises:
        AccountError: No key is configured, or the client rejects it.
    """
    secret = scenario.private_key or (plan.private_key if plan else None)
    if not secret:
        raise AccountError(f"{scenario.label}: no signing key configured")

    try:
        identity = client.resolve_key(secret)
    except Exception as e:
        raise AccountError(f"{scenario.label}: failed to resolve signing key: {e}") from e

    logger.info("%s: using account %s", scenario.label, identity.address)
    return identity


def fund_account(
    client: ChainClient,
    scenario: ScenarioSpec,
    identity: Identity,
    plan: Optional[TestPlan] = None,
) -> bool:
    """Transfer ``request_funds`` from the funding identity, if configured.

    Returns:
        True if a transfer was made.

    Raises:
        AccountError: Funding was requested and failed.
    """
    if not scenario.request_funds:
        return False

    funder_secret = scenario.funder_private_key or (plan.funder_private_key if plan else None)
    if not funder_secret:
        raise AccountError(f"{scenario.label}: funds requested but no funding key configured")

    try:
        funder = client.resolve_key(funder_secret)
        client.transfer_funds(funder, identity, scenario.request_funds)
    except Exception as e:
        raise AccountError(f"{scenario.label}: failed to request funds: {e}") from e

    logger.info("%s: account %s funded with %d", scenario.label, identity.address, scenario.request_funds)
    return True


def buy_credits(client: ChainClient, scenario: ScenarioSpec, identity: Identity) -> bool:
    """Buy ``buy_credit`` credits for the account, if configured and positive.

    Raises:
        CreditError: The purchase failed.
    """
    if not scenario.buy_credit:
        return False

    try:
        client.buy_credit(identity, scenario.buy_credit)
    except Exception as e:
        raise CreditError(f"{scenario.label}: failed to buy credits: {e}") from e

    logger.info("%s: bought %d credits for %s", scenario.label, scenario.buy_credit, identity.address)
    return True


def resolve_bucket(client: ChainClient, scenario: ScenarioSpec, identity: Identity) -> str:
    """Use the configured bucket as-is, or create one owned by identity.

    Raises:
        BucketError: Bucket creation failed.
    """
    if scenario.upload.bucket:
        logger.info("%s: using existing bucket %s", scenario.label, scenario.upload.bucket)
        return scenario.upload.bucket

    try:
        bucket = client.create_bucket(identity)
    except Exception as e:
        raise BucketError(f"{scenario.label}: failed to create bucket: {e}") from e

    logger.info("%s: created bucket %s owned by %s", scenario.label, bucket, identity.address)
    return bucket
