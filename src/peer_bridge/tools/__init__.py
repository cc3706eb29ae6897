"""Administration tools exposed by the peer bridge."""
