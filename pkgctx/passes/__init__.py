"""IR passes: normalization, typing, hoisting, workflows and compaction."""
