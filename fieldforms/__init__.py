"""Form visibility, submission-cycle and four-eye review engine."""
