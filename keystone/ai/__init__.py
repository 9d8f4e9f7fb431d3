"""AI package - Natural-language understanding.

Rule-based and deterministic: no model calls, no clock reads.

Modules:
    - classifier: Feedback category and scheduling intent labels
    - time_resolver: Time expressions to absolute time ranges
    - discovery: Budget, move-in and interest extraction
"""
