"""Job vocabulary shared by the lifecycle engine and the ledgers."""

JOB_TYPES = ("PM", "BM", "Recondition")
JOB_STATUSES = ("pending", "assigned", "in_progress", "completed", "approved", "rejected")
BM_CAUSES = ("breakdown", "accident")
