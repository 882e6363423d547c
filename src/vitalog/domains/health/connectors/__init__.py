"""Health data connectors: moving observations in and out of the data bank."""
