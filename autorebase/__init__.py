"""Keep labeled pull requests rebased on their base branch and merge them when green."""
