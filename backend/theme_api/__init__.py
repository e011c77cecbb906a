"""Theme Discovery backend package.

Canonical imports use the ``theme_api`` prefix with ``backend/`` on the path
(the root ``conftest.py`` and the packaging config both arrange this).
"""

# Do not add any import-time side effects here.
