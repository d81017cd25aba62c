"""Activities service for CTPGA Manager."""
