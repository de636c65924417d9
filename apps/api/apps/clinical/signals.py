"""
Clinical signals for lock events.
"""
from django.dispatch import Signal

# Emitted after a visit is locked and the transaction committed
# Payload (strings, NO PHI):
#   - visit_id: UUID of the visit
#   - source: finalized_record | discharge_summary
#   - actor_user_id: UUID of the user who locked it
medical_record_locked = Signal()

# Emitted after the audited unlock committed
# Payload (strings, NO PHI):
#   - visit_id: UUID of the visit
#   - actor_user_id: UUID of the user who unlocked it
#   - audit_log_id: UUID of the ClinicalAuditLog entry holding the reason
medical_record_unlocked = Signal()
