"""Tests for client/poller.py -- the periodic location check.

Unit tests drive tick() directly against a mocked GeoGuardClient. The
end-to-end tests point a real GeoGuardClient at the TestClient so the poller
talks to the real routes and an in-memory database.
"""

from __future__ import annotations

import threading
import uuid
from unittest.mock import MagicMock

import pytest
import requests

from client.api import ApiResponse, GeoGuardClient
from client.poller import LocationPoller, TickOutcome
from client.sensor import ReplaySensor, SensorUnavailable, StaticSensor
from client.session import ClientSession
from core.geo import Coordinate

SF = Coordinate(37.7749, -122.4194)
NEAR_SF = Coordinate(37.7750, -122.4195)
FAR_FROM_SF = Coordinate(37.7850, -122.4294)


def _signed_in() -> ClientSession:
    session = ClientSession()
    session.sign_in({"id": 1, "email": "a@example.com"}, "tok")
    return session


def _poller(response=None, session=None, sensor=None, **kwargs):
    client = MagicMock(spec=GeoGuardClient)
    if isinstance(response, Exception):
        client.validate_location.side_effect = response
    else:
        client.validate_location.return_value = response
    notices: list[str] = []
    signed_out = threading.Event()
    poller = LocationPoller(
        client,
        session or _signed_in(),
        sensor or StaticSensor(SF.latitude, SF.longitude),
        notice_delay=0,
        on_notice=notices.append,
        on_signed_out=signed_out.set,
        **kwargs,
    )
    return poller, client, notices, signed_out


class TestTick:
    def test_valid(self) -> None:
        poller, client, notices, signed_out = _poller(ApiResponse(200, {"isValid": True, "message": "ok"}))
        assert poller.tick() is TickOutcome.VALID
        client.validate_location.assert_called_once_with("tok", SF)
        assert poller.session.current_location == SF
        assert poller.session.authenticated
        assert not notices
        assert not signed_out.is_set()

    def test_no_token_skips_without_sampling(self) -> None:
        sensor = MagicMock()
        poller, client, _, _ = _poller(session=ClientSession(), sensor=sensor)
        assert poller.tick() is TickOutcome.SKIPPED
        sensor.sample.assert_not_called()
        client.validate_location.assert_not_called()

    def test_violation_signs_out(self) -> None:
        body = {"isValid": False, "error": "You have moved outside the allowed area."}
        poller, _, notices, signed_out = _poller(ApiResponse(403, body))
        assert poller.tick() is TickOutcome.SIGNED_OUT
        assert notices == ["You have moved outside the allowed area."]
        assert signed_out.is_set()
        assert not poller.session.authenticated

    def test_revoked_token_signs_out(self) -> None:
        body = {"error": {"code": "unauthorized", "message": "Session not found or expired."}}
        poller, _, notices, _ = _poller(ApiResponse(401, body))
        assert poller.tick() is TickOutcome.SIGNED_OUT
        assert notices == ["Session not found or expired."]

    def test_2xx_without_is_valid_signs_out(self) -> None:
        poller, _, notices, _ = _poller(ApiResponse(200, {}))
        assert poller.tick() is TickOutcome.SIGNED_OUT
        assert notices  # falls back to the default notice

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    def test_other_errors_keep_session(self, status) -> None:
        poller, _, notices, signed_out = _poller(ApiResponse(status, {"error": {"code": "x", "message": "y"}}))
        assert poller.tick() is TickOutcome.TRANSPORT_FAILED
        assert poller.session.authenticated
        assert not notices
        assert not signed_out.is_set()

    def test_network_error_keeps_session(self) -> None:
        poller, _, _, signed_out = _poller(requests.ConnectionError("refused"))
        assert poller.tick() is TickOutcome.TRANSPORT_FAILED
        assert poller.session.authenticated
        assert not signed_out.is_set()

    def test_sensor_failure_keeps_session(self) -> None:
        sensor = MagicMock()
        sensor.sample.side_effect = SensorUnavailable("no fix")
        poller, client, _, _ = _poller(sensor=sensor)
        assert poller.tick() is TickOutcome.SENSOR_FAILED
        client.validate_location.assert_not_called()
        assert poller.session.authenticated

    def test_sample_timeout_passed_to_sensor(self) -> None:
        sensor = MagicMock()
        sensor.sample.return_value = SF
        poller, _, _, _ = _poller(ApiResponse(200, {"isValid": True}), sensor=sensor, sample_timeout=2.5)
        poller.tick()
        sensor.sample.assert_called_once_with(2.5)


class TestLifecycle:
    def test_first_check_runs_immediately(self) -> None:
        poller, client, _, _ = _poller(interval=60)
        called = threading.Event()

        def validate(token, location):
            called.set()
            return ApiResponse(200, {"isValid": True})

        client.validate_location.side_effect = validate
        with poller:
            assert called.wait(2)
            assert poller.running
        assert not poller.running

    def test_stops_itself_after_sign_out(self) -> None:
        poller, client, _, signed_out = _poller(ApiResponse(403, {"isValid": False, "error": "out"}), interval=0.01)
        poller.start()
        assert signed_out.wait(2)
        poller._thread.join(2)
        assert not poller.running
        assert client.validate_location.call_count == 1

    def test_keeps_polling_through_soft_failures(self) -> None:
        poller, client, _, _ = _poller(ApiResponse(503, {}), interval=0.01)
        with poller:
            for _ in range(200):
                if client.validate_location.call_count >= 3:
                    break
                threading.Event().wait(0.01)
        assert client.validate_location.call_count >= 3
        assert poller.session.authenticated

    def test_double_start_rejected(self) -> None:
        poller, _, _, _ = _poller(ApiResponse(200, {"isValid": True}), interval=60)
        with poller:
            with pytest.raises(RuntimeError):
                poller.start()

    def test_stop_cuts_notice_delay_short(self) -> None:
        poller, _, _, signed_out = _poller(ApiResponse(403, {"isValid": False, "error": "out"}), interval=60)
        poller.notice_delay = 60
        noticed = threading.Event()
        poller.on_notice = lambda message: noticed.set()
        poller.start()
        assert noticed.wait(2)
        poller.stop(timeout=2)
        assert signed_out.is_set()
        assert not poller.session.authenticated


class TestEndToEnd:
    @staticmethod
    def _session(client: GeoGuardClient, email: str, location: Coordinate) -> ClientSession:
        resp = client.login(email, "correct-horse", location)
        assert resp.status_code == 200, resp.body
        session = ClientSession()
        session.sign_in(resp.body["user"], resp.body["token"])
        return session

    @pytest.fixture
    def account(self, api):
        email = f"poller-{uuid.uuid4().hex[:8]}@example.com"
        user_id = api.signup(email, latitude=SF.latitude, longitude=SF.longitude)["user"]["id"]
        return GeoGuardClient("http://testserver", http=api.client), email, user_id

    def test_walk_out_of_area(self, api, account) -> None:
        client, email, user_id = account
        track = [NEAR_SF, NEAR_SF, FAR_FROM_SF]
        session = self._session(client, email, NEAR_SF)
        poller = LocationPoller(client, session, ReplaySensor(track), notice_delay=0)

        assert poller.tick() is TickOutcome.VALID
        assert poller.tick() is TickOutcome.VALID
        assert poller.tick() is TickOutcome.SIGNED_OUT
        assert session.token is None
        assert api.sessions.count_for_user(user_id) == 0

    def test_other_device_signed_out_next_tick(self, api, account) -> None:
        client, email, _ = account
        phone = self._session(client, email, NEAR_SF)
        laptop = self._session(client, email, NEAR_SF)
        assert phone.token != laptop.token

        away = LocationPoller(client, phone, StaticSensor(FAR_FROM_SF.latitude, FAR_FROM_SF.longitude), notice_delay=0)
        assert away.tick() is TickOutcome.SIGNED_OUT

        # The laptop never left the area, but its session went with the phone's.
        home = LocationPoller(client, laptop, StaticSensor(NEAR_SF.latitude, NEAR_SF.longitude), notice_delay=0)
        assert home.tick() is TickOutcome.SIGNED_OUT
        assert laptop.token is None


class _StuckSensor:
    """A sensor that ignores its timeout until released."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def sample(self, timeout: float) -> Coordinate:
        self.release.wait()
        return SF


class TestSampleTimeout:
    def test_overrunning_sensor_counts_as_sensor_failure(self) -> None:
        sensor = _StuckSensor()
        poller, client, _, _ = _poller(sensor=sensor, sample_timeout=0.05)
        try:
            assert poller.tick() is TickOutcome.SENSOR_FAILED
            client.validate_location.assert_not_called()
            assert poller.session.authenticated
        finally:
            sensor.release.set()

    def test_stop_not_held_up_by_stuck_sensor(self) -> None:
        sensor = _StuckSensor()
        poller, _, _, _ = _poller(sensor=sensor, sample_timeout=0.05, interval=60)
        try:
            poller.start()
            poller.stop(timeout=2)
            assert not poller.running
        finally:
            sensor.release.set()

    def test_sensor_errors_still_propagate_as_failures(self) -> None:
        sensor = MagicMock()
        sensor.sample.side_effect = SensorUnavailable("permission denied")
        poller, _, _, _ = _poller(sensor=sensor, sample_timeout=1)
        assert poller.tick() is TickOutcome.SENSOR_FAILED
