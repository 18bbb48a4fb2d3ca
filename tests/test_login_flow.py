# -*- coding: utf-8 -*-
import asyncio

import pytest

from conftest import ACCOUNT, GatedStore, ScriptedGateway, build_service, status
from qrlogin.core.login import GatewayRejected, GatewayUnavailable, LoginState, MalformedResponse, SessionRecord


def run(coro):
    return asyncio.run(asyncio.wait_for(coro, timeout=10))


def test_scan_then_confirm_logs_in():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={
            "K1": [status(801), status(801), status(802), status(803, cookie="C1")],
        })
        service = build_service(gateway)
        seen = []
        service.subscribe(lambda snap: seen.append(snap.state))

        session = await service.begin_login()
        assert session.qr_key == "K1"
        assert session.qr_image == "data:image/png;base64,K1"
        assert session.state == LoginState.POLLING

        session = await service.wait_until_settled()
        assert session.state == LoginState.CONFIRMED
        assert await service.get_credential() == "C1"
        assert await service.check_login() is True
        assert not service.poller.running
        assert gateway.check_calls == ["K1"] * 4

        assert LoginState.SCANNED in seen
        assert seen.index(LoginState.SCANNED) < seen.index(LoginState.CONFIRMED)
        await service.close()

    run(scenario())


def test_expired_code_clears_key_and_stays_logged_out():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(800)]})
        service = build_service(gateway)
        await service.begin_login()
        session = await service.wait_until_settled()

        assert session.state == LoginState.EXPIRED
        assert session.qr_key is None
        assert session.last_error is None
        assert session.to_public_dict()["error"]["kind"] == "SessionExpired"
        assert await service.check_login() is False
        assert not service.poller.running

    run(scenario())


def test_three_transport_failures_fail_the_session():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={
            "K1": [ConnectionError("down"), ConnectionError("down"), ConnectionError("down"), status(803, cookie="C1")],
        })
        service = build_service(gateway, max_failures=3)
        hints = []
        service.subscribe(lambda snap: hints.append(snap.message))

        await service.begin_login()
        session = await service.wait_until_settled()

        assert session.state == LoginState.FAILED
        assert isinstance(session.last_error, GatewayUnavailable)
        assert session.qr_key is None
        assert gateway.check_calls == ["K1"] * 3
        assert not service.poller.running
        assert "状态检查失败，请重试" in hints
        assert await service.check_login() is False

    run(scenario())


def test_single_tick_failures_do_not_stop_polling():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={
            "K1": [
                ConnectionError("blip"), ConnectionError("blip"), status(801),
                MalformedResponse("bad json"), ConnectionError("blip"), status(803, cookie="C1"),
            ],
        })
        service = build_service(gateway)
        await service.begin_login()
        session = await service.wait_until_settled()

        assert session.state == LoginState.CONFIRMED
        assert await service.get_credential() == "C1"
        assert len(gateway.check_calls) == 6

    run(scenario())


def test_scanned_may_revert_to_waiting():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={
            "K1": [status(802), status(801), status(802), status(803, cookie="C1")],
        })
        service = build_service(gateway)
        seen = []
        service.subscribe(lambda snap: seen.append(snap.state))
        await service.begin_login()
        await service.wait_until_settled()

        scanned_at = seen.index(LoginState.SCANNED)
        assert LoginState.POLLING in seen[scanned_at + 1:]
        assert service.session.state == LoginState.CONFIRMED

    run(scenario())


def test_unknown_status_code_is_ignored():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={
            "K1": [status(8821), {"message": "no code"}, status(803, cookie="C1")],
        })
        service = build_service(gateway)
        await service.begin_login()
        session = await service.wait_until_settled()

        assert session.state == LoginState.CONFIRMED
        assert len(gateway.check_calls) == 3

    run(scenario())


def test_confirmed_without_cookie_is_malformed():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803)]})
        service = build_service(gateway)
        await service.begin_login()
        session = await service.wait_until_settled()

        assert session.state == LoginState.FAILED
        assert isinstance(session.last_error, MalformedResponse)
        assert await service.check_login() is False

    run(scenario())


def test_cookies_field_is_accepted_as_credential():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookies="MUSIC_U=abc")]})
        service = build_service(gateway)
        await service.begin_login()
        await service.wait_until_settled()
        assert await service.get_credential() == "MUSIC_U=abc"

    run(scenario())


@pytest.mark.parametrize("codes, expected", [
    ([801, 802, 803], LoginState.CONFIRMED),
    ([800, 803], LoginState.EXPIRED),
    ([802, 800], LoginState.EXPIRED),
    ([801, 803, 800], LoginState.CONFIRMED),
    ([802, 801, 801, 800], LoginState.EXPIRED),
])
def test_confirmed_only_when_803_precedes_800(codes, expected):
    async def scenario():
        script = [status(code, cookie="C1") if code == 803 else status(code) for code in codes]
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": script})
        service = build_service(gateway)
        await service.begin_login()
        session = await service.wait_until_settled()

        assert session.state == expected
        assert await service.check_login() is (expected == LoginState.CONFIRMED)
        # 终态之后不会再发出检查
        first_terminal = next(i for i, code in enumerate(codes) if code in (800, 803))
        assert len(gateway.check_calls) == first_terminal + 1

    run(scenario())


def test_rapid_begin_login_keeps_a_single_attempt():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1", "K2"])
        service = build_service(gateway, interval=0.01)

        await asyncio.gather(service.begin_login(), service.begin_login())
        assert service.session.qr_key == "K2"
        assert service.session.state == LoginState.POLLING
        assert service.poller.running
        assert service.poller.key == "K2"

        await asyncio.sleep(0.05)
        assert gateway.check_calls
        assert set(gateway.check_calls) == {"K2"}
        await service.cancel()
        assert not service.poller.running

    run(scenario())


def test_begin_login_again_cancels_previous_poller():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1", "K2"])
        service = build_service(gateway, interval=0.01)

        await service.begin_login()
        await asyncio.sleep(0.03)
        assert "K1" in gateway.check_calls

        await service.begin_login()
        calls_before = len(gateway.check_calls)
        await asyncio.sleep(0.05)
        assert service.poller.key == "K2"
        assert all(key == "K2" for key in gateway.check_calls[calls_before:])
        await service.close()

    run(scenario())


def test_response_for_cancelled_key_is_discarded():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]})
        gateway.gates["K1"] = asyncio.Event()
        service = build_service(gateway)
        seen = []
        service.subscribe(lambda snap: seen.append(snap.state))

        await service.begin_login()
        while not gateway.check_calls:
            await asyncio.sleep(0)
        await service.cancel()
        count = len(seen)
        gateway.gates["K1"].set()
        await asyncio.sleep(0.02)

        assert service.session.state == LoginState.IDLE
        assert service.session.qr_key is None
        assert len(seen) == count
        assert await service.check_login() is False

    run(scenario())


def test_on_status_ignores_stale_key():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1", "K2"], scripts={"K1": [status(801)]})
        gateway.gates["K1"] = asyncio.Event()
        gateway.gates["K2"] = asyncio.Event()
        service = build_service(gateway)
        await service.begin_login()
        await service.begin_login()

        keep = await service._machine.on_status("K1", status(803, cookie="OLD"))
        assert keep is False
        assert service.session.qr_key == "K2"
        assert service.session.state == LoginState.POLLING
        await service.cancel()

    run(scenario())


def test_cancel_during_enrichment_discards_credential():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]})
        gateway.account_gate = asyncio.Event()
        service = build_service(gateway)
        await service.begin_login()
        while gateway.account_calls == 0:
            await asyncio.sleep(0)
        assert service.session.state == LoginState.CONFIRMED

        await service.cancel()
        gateway.account_gate.set()
        await asyncio.sleep(0.02)

        assert service.session.state == LoginState.IDLE
        assert await service.check_login() is False

    run(scenario())


def test_issue_key_failure_is_surfaced():
    async def scenario():
        gateway = ScriptedGateway()
        gateway.issue_error = GatewayUnavailable("timeout")
        service = build_service(gateway)
        with pytest.raises(GatewayUnavailable):
            await service.begin_login()
        assert service.session.state == LoginState.FAILED
        assert service.session.qr_key is None
        assert not service.poller.running

    run(scenario())


def test_render_qr_rejection_is_surfaced():
    async def scenario():
        gateway = ScriptedGateway()
        gateway.render_error = GatewayRejected("code=502", code=502)
        service = build_service(gateway)
        with pytest.raises(GatewayRejected):
            await service.begin_login()
        session = service.session
        assert session.state == LoginState.FAILED
        assert session.qr_key is None
        assert session.to_public_dict()["error"]["kind"] == "GatewayRejected"

        # 失败后重新发起可以恢复
        gateway.render_error = None
        session = await service.begin_login()
        assert session.state == LoginState.POLLING
        assert session.last_error is None
        await service.cancel()

    run(scenario())


def test_plain_exception_from_gateway_maps_to_unavailable():
    async def scenario():
        gateway = ScriptedGateway()
        gateway.issue_error = OSError("network unreachable")
        service = build_service(gateway)
        with pytest.raises(GatewayUnavailable):
            await service.begin_login()

    run(scenario())


def test_logout_resets_everything():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1", "K2"], scripts={"K1": [status(803, cookie="C1")]})
        service = build_service(gateway, interval=0.01)
        await service.begin_login()
        await service.wait_until_settled()
        assert await service.check_login() is True

        await service.begin_login()
        assert service.poller.running
        snapshots = []
        service.subscribe(snapshots.append)
        await service.logout()

        assert await service.check_login() is False
        assert await service.get_credential() is None
        assert service.session.state == LoginState.IDLE
        assert not service.poller.running
        assert snapshots and snapshots[-1].is_logged_in is False

    run(scenario())


def test_logout_never_raises_when_store_fails():
    class BrokenStore:
        async def clear(self):
            raise OSError("disk gone")

    async def scenario():
        service = build_service(ScriptedGateway())
        service.store = BrokenStore()
        await service.logout()
        assert service.session.state == LoginState.IDLE

    run(scenario())


def test_enrichment_failure_keeps_login_and_retries_lazily():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]},
                                  account=ConnectionError("boom"))
        service = build_service(gateway)
        await service.begin_login()
        await service.wait_until_settled()

        assert await service.check_login() is True
        assert service.snapshot().profile is None

        gateway.account = ACCOUNT
        profile = await service.get_user_info()
        assert profile is not None
        assert profile.nickname == "听歌的人"
        assert profile.playlist_count == 12
        assert (await service.store.load()).profile.user_id == 42

    run(scenario())


def test_failing_subscriber_does_not_break_the_flow():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]})
        service = build_service(gateway)

        def broken(snapshot):
            raise RuntimeError("render failed")

        service.subscribe(broken)
        await service.begin_login()
        session = await service.wait_until_settled()
        assert session.state == LoginState.CONFIRMED

    run(scenario())


def test_request_with_credential_attaches_cookie_only_when_logged_in():
    async def scenario():
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]})
        service = build_service(gateway)

        await service.request_with_credential("/user/playlist", {"uid": 42})
        assert gateway.requests[-1] == ("/user/playlist", {"uid": 42})

        await service.begin_login()
        await service.wait_until_settled()
        await service.request_with_credential("/user/playlist", {"uid": 42})
        assert gateway.requests[-1] == ("/user/playlist", {"uid": 42, "cookie": "C1"})

    run(scenario())


def test_logout_while_confirmed_record_is_being_saved():
    async def scenario():
        store = GatedStore()
        store.gate = asyncio.Event()
        store.write_started = asyncio.Event()
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]})
        service = build_service(gateway, store=store)
        await service.begin_login()
        await store.write_started.wait()

        logout = asyncio.create_task(service.logout())
        await asyncio.sleep(0)
        assert await service.check_login() is False
        store.gate.set()
        await logout

        assert await service.check_login() is False
        assert await store.load() is None
        assert service.snapshot().is_logged_in is False
        assert service.session.state == LoginState.IDLE

        reloaded = build_service(ScriptedGateway(), store=store)
        assert await reloaded.restore() is False

    run(scenario())


def test_cancel_while_saving_keeps_previous_login():
    async def scenario():
        store = GatedStore()
        await store.save(SessionRecord(credential="OLD"))
        store.gate = asyncio.Event()
        store.write_started = asyncio.Event()
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]})
        service = build_service(gateway, store=store)
        await service.begin_login()
        await store.write_started.wait()

        await service.cancel()
        store.gate.set()
        # 等待保存流程释放存储锁
        async with service._store_lock:
            pass

        assert await service.get_credential() == "OLD"
        assert service.session.state == LoginState.IDLE

    run(scenario())


def test_lazy_profile_save_failure_still_returns_profile():
    async def scenario():
        store = GatedStore()
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]},
                                  account=ConnectionError("boom"))
        service = build_service(gateway, store=store)
        await service.begin_login()
        await service.wait_until_settled()

        gateway.account = ACCOUNT
        store.write_error = OSError("disk full")
        profile = await service.get_user_info()

        assert profile is not None
        assert profile.nickname == "听歌的人"
        assert (await store.load()).profile is None
        assert await service.check_login() is True

    run(scenario())


def test_logout_while_lazy_profile_is_being_saved():
    async def scenario():
        store = GatedStore()
        gateway = ScriptedGateway(keys=["K1"], scripts={"K1": [status(803, cookie="C1")]},
                                  account=ConnectionError("boom"))
        service = build_service(gateway, store=store)
        await service.begin_login()
        await service.wait_until_settled()

        gateway.account = ACCOUNT
        store.gate = asyncio.Event()
        store.write_started = asyncio.Event()
        user_info = asyncio.create_task(service.get_user_info())
        await store.write_started.wait()
        logout = asyncio.create_task(service.logout())
        await asyncio.sleep(0)
        store.gate.set()
        await user_info
        await logout

        assert await store.load() is None
        assert service.snapshot().is_logged_in is False
        assert await service.check_login() is False

    run(scenario())


def test_cancel_while_key_is_requested_notifies():
    async def scenario():
        gateway = ScriptedGateway()
        gateway.issue_gate = asyncio.Event()
        service = build_service(gateway)
        snapshots = []
        service.subscribe(snapshots.append)

        begin = asyncio.create_task(service.begin_login())
        while gateway.issue_calls == 0:
            await asyncio.sleep(0)
        assert service.session.state == LoginState.IDLE
        assert service.session.message == "获取二维码中..."

        count = len(snapshots)
        await service.cancel()
        assert len(snapshots) == count + 1
        assert snapshots[-1].state == LoginState.IDLE
        assert snapshots[-1].message == ""

        gateway.issue_gate.set()
        await begin
        assert service.session.state == LoginState.IDLE
        assert service.session.qr_key is None
        assert not service.poller.running

        # 没有进行中的尝试时取消不再通知
        await service.cancel()
        assert len(snapshots) == count + 1

    run(scenario())
