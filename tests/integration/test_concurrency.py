"""
Integration tests for concurrent use of one HistoryDB.

Tests cover:
- Parallel appends on distinct (command, instance) keys
- Parallel appends on the same key (no lost updates)
- Readers interleaved with writers never see a torn chunk
- Two handles on the same file
"""

import threading
from pathlib import Path

from cmdhistory.schema import Command, Invocation
from cmdhistory.store import HistoryDB

CHUNKS_PER_WRITER = 40


def _run_threads(targets: list) -> None:
    threads = [threading.Thread(target=t) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


class TestConcurrentAppends:
    """Tests for appends from several threads sharing one handle."""

    def test_distinct_keys_do_not_interfere(self, db: HistoryDB) -> None:
        keys = [(f"cmd-{c}", f"i-{i}") for c in range(2) for i in range(4)]

        def writer(command_id: str, instance_id: str):
            def run() -> None:
                for n in range(CHUNKS_PER_WRITER):
                    db.append_output(command_id, instance_id, f"{instance_id}:{n};", f"{n},")
            return run

        _run_threads([writer(c, i) for c, i in keys])

        for command_id, instance_id in keys:
            outputs = {o.instance_id: o for o in db.get_outputs(command_id)}
            expected_out = "".join(f"{instance_id}:{n};" for n in range(CHUNKS_PER_WRITER))
            expected_err = "".join(f"{n}," for n in range(CHUNKS_PER_WRITER))
            assert outputs[instance_id].stdout == expected_out
            assert outputs[instance_id].stderr == expected_err

    def test_same_key_loses_no_chunks(self, db: HistoryDB) -> None:
        """Producers racing on one key never overwrite each other's chunks."""
        writers = 6

        def writer(tag: str):
            def run() -> None:
                for n in range(CHUNKS_PER_WRITER):
                    db.append_output("cmd-1", "i-1", f"<{tag}{n}>", tag)
            return run

        _run_threads([writer(chr(ord("a") + w)) for w in range(writers)])

        output = db.get_outputs("cmd-1")[0]
        assert len(output.stderr) == writers * CHUNKS_PER_WRITER
        for w in range(writers):
            tag = chr(ord("a") + w)
            assert output.stderr.count(tag) == CHUNKS_PER_WRITER
            # Each producer's own chunks stay in its call order
            positions = [output.stdout.index(f"<{tag}{n}>") for n in range(CHUNKS_PER_WRITER)]
            assert positions == sorted(positions)

    def test_readers_never_see_torn_chunks(self, db: HistoryDB) -> None:
        """stdout and stderr of one call become visible together."""
        torn: list[tuple[str, str]] = []
        done = threading.Event()

        def writer() -> None:
            for n in range(CHUNKS_PER_WRITER * 2):
                db.append_output("cmd-1", "i-1", "o", "e")
            done.set()

        def reader() -> None:
            while not done.is_set():
                for output in db.get_outputs("cmd-1"):
                    if len(output.stdout) != len(output.stderr):
                        torn.append((output.stdout, output.stderr))

        _run_threads([writer, reader, reader])

        assert torn == []
        output = db.get_outputs("cmd-1")[0]
        assert output.stdout == "o" * CHUNKS_PER_WRITER * 2

    def test_puts_and_appends_interleave(self, db: HistoryDB) -> None:
        def put_commands() -> None:
            for n in range(CHUNKS_PER_WRITER):
                db.put_command(
                    "cmd-1",
                    command=Command(command_id="cmd-1", completed_count=n),
                )

        def put_invocations() -> None:
            for n in range(CHUNKS_PER_WRITER):
                db.put_command(
                    "cmd-1",
                    invocations=[Invocation(command_id="cmd-1", instance_id=f"i-{n}")],
                )

        def append() -> None:
            for _ in range(CHUNKS_PER_WRITER):
                db.append_output("cmd-1", "i-1", "x", "")

        _run_threads([put_commands, put_invocations, append])

        stored = db.get_command("cmd-1")
        assert stored.command.completed_count == CHUNKS_PER_WRITER - 1
        assert stored.invocations[0].instance_id == f"i-{CHUNKS_PER_WRITER - 1}"
        assert db.get_outputs("cmd-1")[0].stdout == "x" * CHUNKS_PER_WRITER


class TestMultipleHandles:
    """Tests for two HistoryDB handles on one file."""

    def test_second_handle_sees_committed_appends(self, db_path: Path) -> None:
        with HistoryDB(db_path) as writer, HistoryDB(db_path) as reader:
            writer.append_output("cmd-1", "i-1", "hello ", "")
            assert reader.get_outputs("cmd-1")[0].stdout == "hello "

            reader.append_output("cmd-1", "i-1", "world", "")
            assert writer.get_outputs("cmd-1")[0].stdout == "hello world"
