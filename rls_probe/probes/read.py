"""Anonymous SELECT probe."""

from rls_probe.errors import TransportError
from rls_probe.models import OperationKind, ProbeOutcome
from rls_probe.probes.base import BaseProbe, ProbeAttempt


class ReadProbe(BaseProbe):
    name = "read_access"
    operation = OperationKind.READ
    description = "SELECT one row as anon; any returned row proves read access"

    async def run(self, transport, table, result) -> ProbeAttempt:
        try:
            rows = await transport.select(table.name, limit=1)
        except TransportError as exc:
            return ProbeAttempt(ProbeOutcome.FAILED, error=exc.message)

        # An empty table and a policy that filters every row look the same.
        if not rows:
            return ProbeAttempt(ProbeOutcome.INDETERMINATE)
        return ProbeAttempt(ProbeOutcome.SUCCEEDED)

    def failure_outcome(self, table, result) -> ProbeOutcome:
        return ProbeOutcome.INDETERMINATE
