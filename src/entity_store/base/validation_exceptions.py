# validation_exceptions.py
class MappingError(TypeError):
    """Base class for programmer/configuration errors in entity declarations and call sites."""
    pass

class EntityConfigurationError(MappingError):
    """Error raised when an entity type declaration is malformed."""
    pass

class UnknownFieldError(EntityConfigurationError, AttributeError):
    """Error raised when a field name is not declared by the entity type."""
    pass

class UnknownSemanticTypeError(EntityConfigurationError):
    """Error raised when a field declares a semantic type that is not supported."""
    pass

class MalformedConditionError(MappingError):
    """Error raised when a condition key or connective cannot be interpreted."""
    pass

class IdentifierWriteError(MappingError):
    """Error raised when the identifier is written as if it were a regular field."""
    pass

class MissingIdentifierError(MappingError):
    """Error raised when persisting or deleting an instance that has no identifier yet."""
    pass

class ConversionError(MappingError, ValueError):
    """Error raised when a value cannot be converted to or from its storage form."""

    def __init__(self, message: str, field=None, value=None):
        super().__init__(message)
        self.field = field
        self.value = value
