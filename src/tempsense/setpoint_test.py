import unittest
from queue import Queue
from unittest.mock import Mock, call

from hamcrest import assert_that, calling, empty, ends_with, has_item, is_, raises

from tempsense.message_log import MessageLog
from tempsense.setpoint import DROP, SetpointPipeline, SetpointState, setpoint_from_osc


class SetpointFromOscTest(unittest.TestCase):

    def test_address_maps_to_device(self):
        assert_that(setpoint_from_osc('/Pelt1', 0.5), is_((0, 50)))
        assert_that(setpoint_from_osc('/Pelt2', 0.25), is_((1, 25)))
        assert_that(setpoint_from_osc('/Pelt12', -0.75), is_((11, -75)))

    def test_value_is_truncated(self):
        assert_that(setpoint_from_osc('/Pelt1', 0.999), is_((0, 99)))
        assert_that(setpoint_from_osc('/Pelt1', -0.999), is_((0, -99)))

    def test_value_is_saturated(self):
        assert_that(setpoint_from_osc('/Pelt1', 2.0), is_((0, 127)))
        assert_that(setpoint_from_osc('/Pelt1', -3.0), is_((0, -128)))

    def test_unrecognised_address(self):
        assert_that(setpoint_from_osc('/Pelt0', 0.5), is_((None, 50)))
        assert_that(setpoint_from_osc('/volume', 0.5), is_((None, 50)))
        assert_that(setpoint_from_osc('/Pelt1/x', 0.5), is_((None, 50)))


class SetpointStateTest(unittest.TestCase):

    def test_initial(self):
        sut = SetpointState()
        assert_that(sut.target_temperature, is_(0))
        assert_that(sut.manual_override, is_(False))
        assert_that(sut.changed, is_(False))

    def test_changed(self):
        sut = SetpointState()
        sut.target_temperature = 5
        assert_that(sut.changed, is_(True))


class SetpointPipelineTest(unittest.TestCase):

    def setUp(self):
        self.log = MessageLog(log=Mock())
        self.sut = SetpointPipeline((0, 1), self.log)

    def log_has(self, text):
        assert_that(self.log.entries(), has_item(ends_with(text)))

    def test_ingest_sets_target(self):
        assert_that(self.sut.ingest(1, 40), is_(True))
        assert_that(self.sut.target(1), is_(40))
        assert_that(self.sut.target(0), is_(0))

    def test_unknown_device_falls_back(self):
        assert_that(self.sut.ingest(7, 30), is_(True))
        assert_that(self.sut.target(0), is_(30))
        self.log_has("[APP] Invalid device id: 7. Defaulting to device 0.")

    def test_unrecognised_osc_address_falls_back(self):
        self.sut.ingest(*setpoint_from_osc('/other', 0.2))
        assert_that(self.sut.target(0), is_(20))

    def test_unknown_device_dropped(self):
        sut = SetpointPipeline((0, 1), self.log, unknown_device_policy=DROP)
        assert_that(sut.ingest(7, 30), is_(False))
        assert_that(sut.target(0), is_(0))
        assert_that(sut.target(1), is_(0))
        self.log_has("[APP] Setpoint 30 for unknown device 7 dropped.")

    def test_invalid_policy(self):
        assert_that(calling(SetpointPipeline).with_args((0,), self.log, 0, "ignore"), raises(ValueError))

    def test_invalid_fallback_device(self):
        assert_that(calling(SetpointPipeline).with_args((0, 1), self.log, 2), raises(ValueError))

    def test_fallback_device_not_needed_when_dropping(self):
        SetpointPipeline((0, 1), self.log, 2, DROP)

    def test_override_ignores_external_events(self):
        self.sut.set_override(0, True)
        self.log_has("[APP] Manual override enabled for device 0.")
        assert_that(self.sut.ingest(0, 77), is_(False))
        assert_that(self.sut.target(0), is_(0))

        self.sut.set_override(0, False)
        self.log_has("[APP] Manual override disabled for device 0.")
        assert_that(self.sut.ingest(0, 77), is_(True))
        assert_that(self.sut.target(0), is_(77))

    def test_override_is_per_device(self):
        self.sut.set_override(0, True)
        self.sut.ingest(1, 12)
        assert_that(self.sut.target(1), is_(12))

    def test_override_logged_only_on_change(self):
        self.sut.set_override(1, False)
        assert_that(self.log.entries(), is_(empty()))

    def test_manual_set_under_override(self):
        self.sut.set_override(0, True)
        self.sut.manual_set(0, -5)
        assert_that(self.sut.target(0), is_(-5))
        self.log_has("[APP] Manual override: device 0 target directly set to -5°C")

    def test_manual_set_text(self):
        assert_that(self.sut.manual_set_text(1, " 42 "), is_(True))
        assert_that(self.sut.target(1), is_(42))

    def test_manual_set_text_invalid(self):
        for text in ("abc", "", "12.5", "128", "-129"):
            assert_that(self.sut.manual_set_text(1, text), is_(False))
        assert_that(self.sut.target(1), is_(0))
        self.log_has("[APP] Invalid temperature input for device 1: 'abc'")

    def test_manual_set_text_limits(self):
        assert_that(self.sut.manual_set_text(0, "127"), is_(True))
        assert_that(self.sut.manual_set_text(1, "-128"), is_(True))

    def test_drain(self):
        source = Queue()
        for event in ((0, 10), (1, 20), (0, 15)):
            source.put(event)
        assert_that(self.sut.drain(source), is_(3))
        assert_that(self.sut.target(0), is_(15))
        assert_that(self.sut.target(1), is_(20))
        assert_that(source.empty(), is_(True))
        assert_that(self.sut.drain(source), is_(0))

    def test_dispatch_sends_changed_targets_once(self):
        orchestrator = Mock()
        orchestrator.send_setpoint.return_value = True
        assert_that(self.sut.dispatch(orchestrator), is_(empty()))
        orchestrator.send_setpoint.assert_not_called()

        self.sut.ingest(1, 25)
        assert_that(self.sut.dispatch(orchestrator), is_([1]))
        orchestrator.send_setpoint.assert_called_once_with(1, 25)

        self.sut.ingest(1, 25)
        assert_that(self.sut.dispatch(orchestrator), is_(empty()))
        orchestrator.send_setpoint.assert_called_once()

    def test_dispatch_does_not_retry_failed_delivery(self):
        orchestrator = Mock()
        orchestrator.send_setpoint.return_value = False
        self.sut.ingest(0, 30)
        assert_that(self.sut.dispatch(orchestrator), is_(empty()))
        assert_that(self.sut.state(0).changed, is_(False))
        self.sut.dispatch(orchestrator)
        assert_that(orchestrator.send_setpoint.mock_calls, is_([call(0, 30)]))

    def test_dispatch_after_manual_set(self):
        orchestrator = Mock()
        self.sut.set_override(0, True)
        self.sut.manual_set(0, 33)
        self.sut.dispatch(orchestrator)
        orchestrator.send_setpoint.assert_called_once_with(0, 33)
