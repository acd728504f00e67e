"""Import pipeline services: mapping, dedupe, execution, sessions, reporting."""
