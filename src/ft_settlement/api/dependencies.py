"""FastAPI dependency for the settlement coordinator built in the lifespan."""

from starlette.requests import Request

from src.ft_settlement.application.coordinator import SettlementCoordinator


def get_coordinator(request: Request) -> SettlementCoordinator:
    return request.app.state.coordinator
