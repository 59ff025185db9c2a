"""
The control loop connecting the external setpoint source, the setpoint pipeline and the device orchestrator.
"""
import logging
import threading
from queue import Queue

from tempsense.message_log import APP, MessageLog
from tempsense.orchestrator import DeviceOrchestrator
from tempsense.setpoint import SetpointPipeline

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.02


class ControlLoop:
    """
    Runs one tick at a time on a single thread:

    - applies every queued setpoint event
    - reconciles the device status reported by the workers
    - sends any changed setpoints to their devices

    A user interface may call tick() from its own frame update instead of using run().

    :param orchestrator:    manages the devices
    :param pipeline:        holds the per-device setpoints
    :param setpoints:       a queue of (device_id, value) tuples from the external source
    :param interval:        the time between ticks when using run()
    """

    def __init__(self, orchestrator: DeviceOrchestrator, pipeline: SetpointPipeline, setpoints: Queue=None,
                 interval=DEFAULT_INTERVAL):
        self.orchestrator = orchestrator
        self.pipeline = pipeline
        self.setpoints = setpoints if setpoints is not None else Queue()
        self.interval = interval
        self.running = False

    @classmethod
    def from_settings(cls, settings, setpoints: Queue=None, worker_factory=None):
        """ Builds the loop and its collaborators from the application Settings. """
        message_log = MessageLog(settings.log_capacity)
        orchestrator = DeviceOrchestrator(settings.devices, message_log, worker_factory=worker_factory,
                                          worker_options=settings.worker_options)
        pipeline = SetpointPipeline(orchestrator.device_ids, message_log, settings.fallback_device,
                                    settings.unknown_device_policy)
        return cls(orchestrator, pipeline, setpoints, settings.loop_interval)

    @property
    def message_log(self) -> MessageLog:
        return self.orchestrator.message_log

    def tick(self):
        self.pipeline.drain(self.setpoints)
        self.orchestrator.reconcile()
        self.pipeline.dispatch(self.orchestrator)

    def start(self):
        """ Enables temperature control on the connected devices. """
        self.running = True
        self.message_log.add(APP, "System running.")
        return self.orchestrator.set_active(True)

    def stop_all(self):
        """ Disables temperature control on the connected devices. """
        self.running = False
        self.message_log.add(APP, "System stopped.")
        return self.orchestrator.set_active(False)

    def run(self, stop_event: threading.Event):
        """
        Ticks until stop_event is set, then shuts down the device workers.
        """
        logger.info("control loop started")
        try:
            while not stop_event.is_set():
                self.tick()
                stop_event.wait(self.interval)
        finally:
            self.orchestrator.shutdown()
            logger.info("control loop stopped")
