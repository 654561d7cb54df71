import threading
import time

import pytest
import requests

from gridd.splinter import protocol
from gridd.splinter.app_auth_handler import AdminEventHandler, get_node_id, run
from gridd.splinter.config import DaemonConfig, ListenerConfig
from gridd.splinter.errors import NodeLookupError, ReconnectExhaustedError
from gridd.splinter.events import ServiceScope, decode_admin_event
from conftest import FakeSession


class TestGetNodeId:

    def test_returns_node_id(self, fake_session):
        assert get_node_id("http://splinterd:8085/", session=fake_session) == "alpha-node-000"
        assert fake_session.gets[0]["url"] == "http://splinterd:8085/status"

    @pytest.mark.parametrize("response_kwargs", [
        {"status_code": 200},
        {"status_code": 200, "json_body": {"version": "0.4"}},
        {"status_code": 200, "json_body": {"node_id": 7}},
        {"status_code": 200, "json_body": ["alpha"]},
        {"status_code": 503, "json_body": {"node_id": "alpha"}},
    ])
    def test_unusable_status(self, make_session, make_response, response_kwargs):
        session = make_session(get_response=make_response(**response_kwargs))
        with pytest.raises(NodeLookupError):
            get_node_id("http://splinterd:8085", session=session)

    def test_unreachable(self, make_session):
        session = make_session(get_response=requests.ConnectionError("refused"))
        with pytest.raises(NodeLookupError) as exc_info:
            get_node_id("http://splinterd:8085", session=session)
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


class RecordingWorker:
    def __init__(self):
        self.offers = []

    def offer(self, scope):
        self.offers.append(scope)
        return True


class TestAdminEventHandler:

    def test_offers_matching_scope(self, make_circuit_ready):
        worker = RecordingWorker()
        handler = AdminEventHandler("alpha-node-000", worker)

        scope = handler(decode_admin_event(make_circuit_ready()))

        assert scope == ServiceScope("01234-ABCDE", "gsAA")
        assert worker.offers == [scope]

    def test_ignores_other_nodes_and_events(self, make_circuit_ready, make_unhandled_event):
        worker = RecordingWorker()
        handler = AdminEventHandler("gamma-node-000", worker)

        handler(decode_admin_event(make_circuit_ready()))
        handler(decode_admin_event(make_unhandled_event()))

        assert worker.offers == []


@pytest.fixture
def daemon_config(key_dir, scar_dir):
    return DaemonConfig(
        splinterd_url="http://splinterd:8085",
        key_name="gridd",
        key_dir=key_dir,
        scar_dir=scar_dir,
        listener=ListenerConfig(
            reconnect_limit=0,
            idle_timeout_seconds=1.0,
            reconnect_base_delay_seconds=0.0,
            reconnect_max_delay_seconds=0.0,
        ),
        submit_timeout_seconds=5.0,
        log_level="info",
        log_json=False,
    )


class TestRun:

    def test_provisions_ready_circuit_then_reports_exhaustion(
        self, daemon_config, keys, fake_session, make_connector, make_circuit_ready
    ):
        provisioned = threading.Event()
        connector = make_connector([
            make_circuit_ready(),
            lambda: provisioned.wait(timeout=10),
        ])

        with pytest.raises(ReconnectExhaustedError):
            run(
                daemon_config,
                keys,
                session=fake_session,
                connect=connector,
                on_provisioned=lambda scope: provisioned.set(),
            )

        assert provisioned.is_set()
        assert connector.calls[0]["url"] == "ws://splinterd:8085/ws/admin/register/grid"
        assert len(fake_session.posts) == 1
        assert fake_session.posts[0]["url"] == (
            "http://splinterd:8085/scabbard/01234-ABCDE/gsAA/batches"
        )
        batch_list = protocol.BatchList()
        batch_list.ParseFromString(fake_session.posts[0]["data"])
        assert len(batch_list.batches[0].transactions) == 8

    def test_node_lookup_failure_stops_before_listening(
        self, daemon_config, keys, make_session, make_connector
    ):
        session = make_session(get_response=requests.ConnectionError("refused"))
        connector = make_connector()

        with pytest.raises(NodeLookupError):
            run(daemon_config, keys, session=session, connect=connector)

        assert connector.calls == []

    def test_ready_circuit_for_other_nodes_submits_nothing(
        self, daemon_config, keys, make_session, make_response, make_connector, make_circuit_ready
    ):
        session = make_session(get_response=make_response(200, {"node_id": "gamma-node-000"}))
        connector = make_connector([make_circuit_ready()])

        with pytest.raises(ReconnectExhaustedError):
            run(daemon_config, keys, session=session, connect=connector)

        assert len(connector.calls) == 1
        assert session.posts == []

    def test_waits_for_in_flight_submission_before_returning(
        self, daemon_config, keys, make_connector, make_circuit_ready
    ):
        class SlowSession(FakeSession):
            def post(self, url, data=None, headers=None, timeout=None):
                time.sleep(0.5)
                return super().post(url, data=data, headers=headers, timeout=timeout)

        session = SlowSession()
        provisioned = []
        connector = make_connector([make_circuit_ready()])

        with pytest.raises(ReconnectExhaustedError):
            run(
                daemon_config,
                keys,
                session=session,
                connect=connector,
                on_provisioned=provisioned.append,
            )

        assert len(session.posts) == 1
        assert provisioned == [ServiceScope("01234-ABCDE", "gsAA")]
