"""Support ticket lifecycle, automation rules and work queue prioritisation."""
