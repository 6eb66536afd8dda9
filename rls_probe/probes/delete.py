"""Anonymous DELETE probe against the row created by the insert probe."""

from rls_probe.errors import TransportError
from rls_probe.models import OperationKind, ProbeOutcome
from rls_probe.probes.base import ProbeAttempt, RowTargetedProbe


class DeleteProbe(RowTargetedProbe):
    name = "delete_access"
    operation = OperationKind.DELETE
    description = "DELETE the inserted row filtered by primary key"

    async def run(self, transport, table, result) -> ProbeAttempt:
        missing = self.missing_precondition(table, result)
        if missing:
            return ProbeAttempt(ProbeOutcome.UNDECIDABLE, error=missing)

        try:
            await transport.delete(table.name, self.match(table, result))
        except TransportError as exc:
            return ProbeAttempt(ProbeOutcome.FAILED, error=exc.message)
        return ProbeAttempt(ProbeOutcome.SUCCEEDED)
