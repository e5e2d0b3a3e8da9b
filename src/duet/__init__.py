"""duet – Conversación por turnos entre dos agentes de IA, con voz y transcripts compartibles."""

__version__ = "0.3.0"
