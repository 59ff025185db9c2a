"""Serial device workers and the messages exchanged with them."""
