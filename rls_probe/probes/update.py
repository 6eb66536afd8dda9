"""Anonymous UPDATE probe against the row created by the insert probe."""

from rls_probe.errors import TransportError
from rls_probe.models import OperationKind, ProbeOutcome
from rls_probe.probes.base import ProbeAttempt, RowTargetedProbe


class UpdateProbe(RowTargetedProbe):
    name = "update_access"
    operation = OperationKind.UPDATE
    description = "Re-submit the inserted row as an UPDATE filtered by primary key"

    async def run(self, transport, table, result) -> ProbeAttempt:
        missing = self.missing_precondition(table, result)
        if missing:
            return ProbeAttempt(ProbeOutcome.UNDECIDABLE, error=missing)

        try:
            await transport.update(table.name, result.inserted_record, self.match(table, result))
        except TransportError as exc:
            return ProbeAttempt(ProbeOutcome.FAILED, error=exc.message)
        return ProbeAttempt(ProbeOutcome.SUCCEEDED)
