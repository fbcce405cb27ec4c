"""HTTP API for quoting, the Jupiter execution proxy and swap history."""
