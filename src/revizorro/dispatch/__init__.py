"""Dispatcher for slow, unreliable CLI agent workers.

The agent is treated as an opaque subprocess: it is fed a rendered request,
its combined output is captured to disk, and its result is judged from side
effects on the work item (a changed test file, a rewritten marker line), not
from the exit code.

Two loops share the same models and persistence:

- ``SequentialDispatcher`` walks the worklist with a cursor, retrying each
  item up to a consecutive-failure ceiling before dead-lettering it into the
  guardrail log.
- ``ParallelDispatcher`` runs a bounded pool of single-attempt invocations
  and keeps aggregate counters.

Both persist a small JSON document after every transition, written through
a temp file and ``os.replace`` so a crash never leaves a half-written state.
"""
