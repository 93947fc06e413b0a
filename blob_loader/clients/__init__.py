"""Chain client implementations, one per scenario target."""

from typing import Optional

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.clients.gateway import GatewayChainClient
from blob_loader.clients.memory import InMemoryChainClient
from blob_loader.clients.s3 import S3ChainClient
from blob_loader.errors import ConfigError
from blob_loader.models import Network, Target, TestPlan

# Gateways reachable without configuration
LOCAL_GATEWAY_URL = "http://127.0.0.1:8001"
DEFAULT_GATEWAYS = {
    Network.DEVNET: LOCAL_GATEWAY_URL,
    Network.LOCALNET: LOCAL_GATEWAY_URL,
}


def gateway_url(network: Network, endpoint: Optional[str] = None) -> str:
    """Gateway URL for a network, preferring an explicit endpoint."""
    if endpoint:
        return endpoint
    try:
        return DEFAULT_GATEWAYS[network]
    except KeyError:
        raise ConfigError(f"network '{network.value}' needs an explicit endpoint") from None


def build_chain_client(target: Target, plan: TestPlan) -> ChainClient:
    """Build the client for one target of a plan."""
    if target == Target.SDK:
        return GatewayChainClient(gateway_url(plan.network, plan.endpoint))
    if target == Target.S3:
        return S3ChainClient(plan.endpoint, region_name=plan.region)
    return InMemoryChainClient()


def build_chain_clients(plan: TestPlan) -> dict[Target, ChainClient]:
    """Build one client per target used by the plan."""
    return {target: build_chain_client(target, plan) for target in plan.targets}


__all__ = [
    "ChainClient",
    "Identity",
    "GatewayChainClient",
    "InMemoryChainClient",
    "S3ChainClient",
    "build_chain_client",
    "build_chain_clients",
    "gateway_url",
]
