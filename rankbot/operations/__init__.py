"""
Operations Layer

Business logic that composes the Match Record Store into the workflows the
bot exposes:
- MatchLifecycle: submit, confirm, deny and cancel matches
- AdminOperations: rating adjustments, match reverts, suspensions, audit trail
- ParticipantOperations: Discord user registration and directory sync

Database layer: data access and the atomic write primitive
Operations layer: validation, permissions and state transitions
Command layer: Discord integration and user interface
"""
