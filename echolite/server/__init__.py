"""HTTP surface of the EchoLite gateway."""
