"""Handshake gate middleware: applies RequestGate decisions to HTTP traffic"""
from typing import Callable

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from handshake_guard.api.deps import current_session_id
from handshake_guard.api.pages import render_loader
from handshake_guard.middleware.monitoring import record_gate_decision
from handshake_guard.security import GateOutcome, GateRequest, RequestGate
from handshake_guard.utils.network import client_ip, set_token_cookie


class HandshakeGateMiddleware(BaseHTTPMiddleware):
    """Challenge, forward or rotate-and-forward every request.

    Must sit inside ``SessionMiddleware`` so that the host session id is
    available on ``request.session``.
    """

    def __init__(self, app, gate: RequestGate, trust_proxy_headers: bool = False):
        super().__init__(app)
        self.gate = gate
        self.trust_proxy_headers = trust_proxy_headers

    def gate_request(self, request: Request) -> GateRequest:
        return GateRequest(
            path=request.url.path,
            client_ip=client_ip(request, self.trust_proxy_headers),
            user_agent=request.headers.get("user-agent"),
            headers=dict(request.headers),
            cookie=request.cookies.get(self.gate.config.cookie.name),
            session_id=current_session_id(request),
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Store lookups may block, keep them off the event loop
        decision = await run_in_threadpool(self.gate.decide, self.gate_request(request))
        record_gate_decision(decision.outcome.value, decision.reason)
        request.state.gate_decision = decision

        if decision.outcome is GateOutcome.CHALLENGE_REQUIRED:
            target = request.url.path
            if request.url.query:
                target = f"{target}?{request.url.query}"
            return render_loader(request, target)

        response = await call_next(request)

        if decision.outcome is GateOutcome.PASS_THROUGH_WITH_ROTATED_COOKIE and decision.rotated is not None:
            set_token_cookie(response, decision.rotated, self.gate.config.cookie)

        return response
