"""netmeter - network throughput and daily usage meter."""

__version__ = "1.0.0"
