"""co2mon -- CO2 reporter for MH-Z14A sensors on a serial port."""
