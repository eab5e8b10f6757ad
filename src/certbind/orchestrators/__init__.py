"""Orchestrator functions, keyed by workflow name.

An orchestrator takes a :class:`~certbind.workflow.context.WorkflowContext`
and returns a JSON-serialisable output.  It must only reach the
outside world through the context so it can be replayed.
"""

from certbind.orchestrators import binding, issuance, wildcard

ORCHESTRATORS = {
    issuance.WORKFLOW_NAME: issuance.issue_certificate,
    wildcard.BATCH_WORKFLOW_NAME: wildcard.issue_wildcard_batch,
    wildcard.DOMAIN_WORKFLOW_NAME: wildcard.issue_wildcard_domain,
    binding.WORKFLOW_NAME: binding.bind_certificate,
}

__all__ = ["ORCHESTRATORS"]
