from tests.testing.documents import nested_document
from tests.testing.invoker import direct_or_lowered

# Mark these imports as used so they don't get removed.
# They need to be imported in `conftest.py` so the fixtures are registered.
_ = (
    nested_document,
    direct_or_lowered,
)
