"""
Visit workflow signals.

Sent only after the surrounding transaction commits (transaction.on_commit),
so receivers never observe a status that was rolled back. Payload values are
strings, NO PHI.
"""
from django.dispatch import Signal

# Emitted after a committed status change
# Payload:
#   - visit_id: UUID of the visit
#   - from_status / to_status: VisitStatus values
#   - actor_user_id: UUID of the acting user (or None)
visit_status_changed = Signal()


# Example listener (notification delivery lives outside this service):
#
# @receiver(visit_status_changed)
# def on_visit_status_changed(sender, visit_id, from_status, to_status, **kwargs):
#     if to_status == 'ready_for_billing':
#         notify_cashier_queue(visit_id)
