"""Anonymous INSERT probe."""

import random

from rls_probe.errors import TransportError
from rls_probe.generator import generate_record
from rls_probe.models import OperationKind, ProbeOutcome
from rls_probe.probes.base import BaseProbe, ProbeAttempt


class InsertProbe(BaseProbe):
    name = "insert_access"
    operation = OperationKind.INSERT
    description = "INSERT a synthetic row as anon and read it back"

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    async def run(self, transport, table, result) -> ProbeAttempt:
        record = generate_record(table, self.rng)
        try:
            row = await transport.insert_and_return(table.name, record)
        except TransportError as exc:
            return ProbeAttempt(ProbeOutcome.FAILED, error=exc.message)

        if row is None:
            return ProbeAttempt(ProbeOutcome.FAILED, error="insert returned no row")
        # server-assigned values (primary key, defaults) win
        return ProbeAttempt(ProbeOutcome.SUCCEEDED, record={**record, **row})
