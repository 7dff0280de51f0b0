"""Phase-balanced net metering: integration, change detection and correction."""
