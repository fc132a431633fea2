"""Calendar data model, normalization and recurrence expansion."""
