from cpjoin.observers.console import ConsoleObserver
from cpjoin.observers.dispatcher import EventBus
from cpjoin.observers.interface import Observer
from cpjoin.observers.events import DryRunAction, HealthChecked, WaitStarted, new_ctx


# Simple capturing observer
class Capture(Observer):
    def __init__(self): self.events = []
    def notify(self, event): self.events.append(event)


class Broken(Observer):
    def notify(self, event): raise RuntimeError("observer bug")


def test_bus_delivers_to_every_observer_even_if_one_fails():
    first, last = Capture(), Capture()
    bus = EventBus([first, Broken(), last])

    ev = DryRunAction(**new_ctx(node="cp-2", phase="etcd"), message="Would start the etcd service")
    bus.emit(ev)

    assert first.events == [ev]
    assert last.events == [ev]


def test_new_ctx_reuses_run_id():
    ctx = new_ctx(node="cp-2", phase="etcd", run_id="run-1")
    assert ctx["run_id"] == "run-1"
    assert ctx["ts"].endswith("Z")
    assert new_ctx(node="cp-2", phase="etcd")["run_id"] != new_ctx(node="cp-2", phase="etcd")["run_id"]


def test_console_lines(capsys):
    console = ConsoleObserver()
    ctx = new_ctx(node="cp-2", phase="etcd")

    console.notify(DryRunAction(**ctx, message="Would add etcd member: https://10.0.0.12:2380"))
    console.notify(WaitStarted(**ctx, retries=8, interval_s=5))
    console.notify(HealthChecked(**new_ctx(node="cp-2", phase="check-etcd"),
                                 strategy="ViaEndpoint", endpoints=[], ok=False, error="NOSPACE"))

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "[dryrun] Would add etcd member: https://10.0.0.12:2380"
    assert lines[1].endswith("This can take up to 40s")
    assert lines[2] == "[check-etcd] etcd cluster is NOT healthy: NOSPACE"
