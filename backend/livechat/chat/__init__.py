"""Chat module - conversation lifecycle, message routing and automated replies."""
