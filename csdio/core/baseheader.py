"""
This module defines :class:`BaseHeader`, the base class used by all
:mod:`csdio.core` header classes.

Header objects are plain value holders: their attributes are listed in
``_necessary_attrs`` as ``(name, type)`` tuples, two headers compare equal
when every attribute matches, and :meth:`BaseHeader.replace` returns an
updated copy instead of mutating the instance.
"""


class BaseHeader:
    """
    Base class for decoded CSD headers.

    Subclasses only declare ``_necessary_attrs``; every attribute must be
    given as a keyword argument at construction.
    """

    _necessary_attrs = ()

    def __init__(self, **kwargs):
        names = self._attr_names()
        missing = [name for name in names if name not in kwargs]
        if missing:
            raise TypeError(f"{self.__class__.__name__} missing attributes: {missing}")
        unknown = [name for name in kwargs if name not in names]
        if unknown:
            raise TypeError(f"{self.__class__.__name__} got unknown attributes: {unknown}")
        # numpy scalars coming from the decoders become plain python values
        for name, attr_type in self._necessary_attrs:
            setattr(self, name, attr_type(kwargs[name]))

    @classmethod
    def _attr_names(cls):
        return [name for name, _ in cls._necessary_attrs]

    def as_dict(self):
        """Return the attributes as a dict, in declaration order."""
        return {name: getattr(self, name) for name in self._attr_names()}

    def replace(self, **changes):
        """Return a copy with some attributes changed."""
        attrs = self.as_dict()
        attrs.update(changes)
        return self.__class__(**attrs)

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __hash__(self):
        return hash(tuple(self.as_dict().values()))

    def __repr__(self):
        attrs = ", ".join(f"{name}={value!r}" for name, value in self.as_dict().items())
        return f"{self.__class__.__name__}({attrs})"