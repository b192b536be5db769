"""Label prediction workflow, concurrent orchestration, evaluation and reporting."""
