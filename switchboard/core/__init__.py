"""Per-call orchestration: session state, audio gate, hand-offs."""
