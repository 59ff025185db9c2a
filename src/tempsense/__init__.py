"""
Temperature control for Peltier modules driven by serial-attached microcontrollers.

- DeviceWorker: owns one serial port on its own thread. Receives commands (Connect, Disconnect,
  SendCommand, Stop) on a command channel and reports status (Connected, Disconnected, Error, Message)
  on a status channel.
- DeviceSession: the owner's record of a worker, its channels and the last known state.
- DeviceOrchestrator: creates a worker per device on connect, forwards commands and, once per tick,
  reconciles the status from every worker into the state shown to the user. Joins worker threads
  when they disconnect.
- SetpointPipeline: applies external (device_id, value) setpoint events, honouring manual override,
  and forwards changed targets to the devices.
- ControlLoop: drives the pipeline and orchestrator from a single thread.


## Threading

Each connected device has a dedicated thread running its DeviceWorker. Serial reads use a short timeout
so the worker checks its command channel regularly.

The control loop runs on one thread. It never blocks on device I/O: it drains status channels without
waiting, and only joins a worker thread after the worker has reported that it disconnected or has been
asked to stop, at which point the thread ends within one loop interval plus one read timeout.

No state is shared between threads other than the channels.
"""
