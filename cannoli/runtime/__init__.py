"""Run orchestration: the run itself, its limiter, usage tracking, and canvas sink."""
