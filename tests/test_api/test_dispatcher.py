"""Tests for the RPC dispatcher: envelope handling, auth, error mapping and a full trade flow."""

from __future__ import annotations

import uuid

import pytest

from barter_exchange.api.deps import get_principal
from barter_exchange.api.dispatcher import METHODS, RpcDispatcher, RpcMethod
from barter_exchange.domain.principal import SYSTEM_USER_ID


def _call(method: str, params: dict | None = None, request_id: int = 1) -> dict:
    body: dict = {"id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return body


@pytest.fixture
def dispatcher(session_factory) -> RpcDispatcher:
    return RpcDispatcher(session_factory)


class TestEnvelope:
    @pytest.mark.asyncio
    async def test_unknown_method(self, dispatcher, proposer) -> None:
        response = await dispatcher.dispatch(_call("trade_teleport"), proposer)
        assert response == {
            "id": 1,
            "error": {"code": -32601, "message": "Method not found: trade_teleport"},
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, [], {"id": 3}, {"id": 3, "method": ""}])
    async def test_invalid_request(self, dispatcher, payload) -> None:
        response = await dispatcher.dispatch(payload, None)
        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, dispatcher) -> None:
        response = await dispatcher.dispatch(_call("trade_list_proposals", request_id=42), None)
        assert response == {"id": 42, "result": {"trades": []}}


class TestAuth:
    @pytest.mark.asyncio
    async def test_private_method_needs_principal(self, dispatcher) -> None:
        response = await dispatcher.dispatch(_call("trade_my_trades"), None)
        assert response["error"]["code"] == 4001

    @pytest.mark.asyncio
    async def test_admin_method_forbidden(self, dispatcher, proposer) -> None:
        response = await dispatcher.dispatch(_call("admin_platform_stats"), proposer)
        assert response["error"]["code"] == 4003

    def test_public_methods(self) -> None:
        public = {name for name, method in METHODS.items() if method.public}
        assert public == {"trade_list_proposals", "trade_get_public", "user_reviews"}


class TestParams:
    @pytest.mark.asyncio
    async def test_missing_params(self, dispatcher, proposer) -> None:
        response = await dispatcher.dispatch(_call("trade_get"), proposer)
        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_malformed_uuid(self, dispatcher, proposer) -> None:
        response = await dispatcher.dispatch(
            _call("trade_get", {"trade_id": "not-a-uuid"}), proposer
        )
        assert response["error"]["code"] == -32602
        assert "trade_id" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_score_out_of_range(self, dispatcher, proposer) -> None:
        response = await dispatcher.dispatch(
            _call(
                "trade_review",
                {
                    "trade_id": str(uuid.uuid4()),
                    "timeliness_score": 0,
                    "packaging_score": 5,
                    "value_honesty_score": 5,
                    "state_accuracy_score": 5,
                },
            ),
            proposer,
        )
        assert response["error"]["code"] == -32602


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_not_found(self, dispatcher, proposer) -> None:
        response = await dispatcher.dispatch(
            _call("trade_get", {"trade_id": str(uuid.uuid4())}), proposer
        )
        assert response["error"]["code"] == 4004

    @pytest.mark.asyncio
    async def test_self_accept_is_bad_request(self, dispatcher, proposal_id, proposer) -> None:
        response = await dispatcher.dispatch(
            _call("trade_accept", {"trade_id": str(proposal_id)}), proposer
        )
        assert response["error"]["code"] == 4000

    @pytest.mark.asyncio
    async def test_invalid_state(self, dispatcher, proposal_id, proposer, configured_wallet) -> None:
        response = await dispatcher.dispatch(
            _call("commitment_get_details", {"trade_id": str(proposal_id)}), proposer
        )
        assert response["error"]["code"] == 4009

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(
        self, dispatcher, proposer, monkeypatch
    ) -> None:
        async def _boom(*_args) -> dict:
            raise RuntimeError("disk on fire")

        monkeypatch.setitem(METHODS, "trade_my_trades", RpcMethod(_boom))
        response = await dispatcher.dispatch(_call("trade_my_trades"), proposer)
        assert response["error"] == {"code": 5000, "message": "Internal server error"}


class TestFullFlow:
    @pytest.mark.asyncio
    async def test_propose_accept_commit_complete_review(
        self, dispatcher, proposer, acceptor, configured_wallet
    ) -> None:
        created = await dispatcher.dispatch(
            _call(
                "trade_create",
                {
                    "item_title": "Vintage film camera",
                    "item_description": "35mm rangefinder",
                    "item_value_usd": "100.00",
                    "wishlist": [{"wishlist_type": "xch", "xch_amount": 5_000_000_000_000}],
                },
            ),
            proposer,
        )
        trade_id = created["result"]["trade_id"]

        listed = await dispatcher.dispatch(_call("trade_list_proposals"), None)
        assert [t["id"] for t in listed["result"]["trades"]] == [trade_id]

        accepted = await dispatcher.dispatch(
            _call(
                "trade_accept",
                {"trade_id": trade_id, "offer_type": "xch", "xch_amount": 5_000_000_000_000},
            ),
            acceptor,
        )
        assert accepted == {"id": 1, "result": {"success": True}}

        details = await dispatcher.dispatch(
            _call("commitment_get_details", {"trade_id": trade_id}), acceptor
        )
        assert details["result"]["exchange_wallet_address"] == configured_wallet
        assert details["result"]["user_role"] == "acceptor"

        pending = await dispatcher.dispatch(
            _call("commitment_create_pending", {"trade_id": trade_id, "amount_mojos": 2000}),
            acceptor,
        )
        submitted = await dispatcher.dispatch(
            _call(
                "commitment_submit_tx",
                {"transaction_id": pending["result"]["transaction_id"], "tx_id": "0xabc"},
            ),
            acceptor,
        )
        assert "error" not in submitted

        for principal in (proposer, acceptor):
            response = await dispatcher.dispatch(_call("trade_commit", {"trade_id": trade_id}), principal)
            assert "error" not in response
        await dispatcher.dispatch(_call("trade_complete", {"trade_id": trade_id}), proposer)

        fetched = await dispatcher.dispatch(_call("trade_get", {"trade_id": trade_id}), acceptor)
        trade = fetched["result"]["trade"]
        assert trade["status"] == "completed"
        assert trade["trade_type"] == "item_for_xch"

        reviewed = await dispatcher.dispatch(
            _call(
                "trade_review",
                {
                    "trade_id": trade_id,
                    "timeliness_score": 5,
                    "packaging_score": 5,
                    "value_honesty_score": 5,
                    "state_accuracy_score": 5,
                },
            ),
            proposer,
        )
        assert "review_id" in reviewed["result"]

        reviews = await dispatcher.dispatch(
            _call("user_reviews", {"user_id": str(acceptor.user_id)}), None
        )
        assert reviews["result"]["reviews"][0]["overall_score"] == 5.0

        ledger = await dispatcher.dispatch(
            _call("commitment_list_transactions", {"trade_id": trade_id}), proposer
        )
        assert [tx["status"] for tx in ledger["result"]["transactions"]] == ["mempool"]


class TestPrincipalHeaders:
    @pytest.mark.asyncio
    async def test_anonymous(self) -> None:
        assert await get_principal(None, None, None) is None

    @pytest.mark.asyncio
    async def test_regular_user(self) -> None:
        user_id = uuid.uuid4()
        principal = await get_principal(str(user_id), "alice", None)
        assert principal.user_id == user_id
        assert principal.username == "alice"
        assert principal.is_admin is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("flag", ["true", "1", "YES"])
    async def test_admin_flag(self, flag: str) -> None:
        principal = await get_principal(str(uuid.uuid4()), "root", flag)
        assert principal.is_admin is True

    @pytest.mark.asyncio
    async def test_garbage_user_id(self) -> None:
        assert await get_principal("not-a-uuid", "x", "true") is None

    @pytest.mark.asyncio
    async def test_system_id_cannot_be_claimed(self) -> None:
        assert await get_principal(str(SYSTEM_USER_ID), "system", "true") is None
