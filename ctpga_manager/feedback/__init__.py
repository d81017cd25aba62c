"""Feedback service for CTPGA Manager."""
