# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from dojo_brackets.models.bracket import Bracket  # noqa: F401
from dojo_brackets.models.match import Match  # noqa: F401
from dojo_brackets.models.registration import Registration  # noqa: F401
from dojo_brackets.models.tournament import Tournament  # noqa: F401
