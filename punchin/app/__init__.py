"""Application package.

``core`` holds configuration, logging and persistence, ``domain`` the
booking entities, ``services`` the quote/booking/sync logic and ``workers``
the background loops.
"""
