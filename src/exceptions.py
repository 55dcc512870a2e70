"""
Custom exceptions for golf-betslip
"""


class GolfBetError(Exception):
    """Base exception for golf-betslip"""
    pass


class DataError(GolfBetError):
    """Error related to stored bet data"""
    pass


class BetNotFoundError(DataError):
    """Bet id is not present in the store"""
    pass


class EventNotFoundError(DataError):
    """Event id has no history row"""
    pass


class ValidationError(GolfBetError):
    """Error related to input validation"""
    pass


class ConfigurationError(GolfBetError):
    """Error related to configuration"""
    pass


class FeedError(GolfBetError):
    """Error related to the results feed"""
    pass