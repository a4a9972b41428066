# mid_auth/errors.py
#
# Input / format errors. These are raised (fatal to the current call);
# provider errors are returned as values instead, see responses.py.


class MidAuthError(Exception):
    """Base class for every error raised by mid_auth."""


class UnknownHashName(MidAuthError):
    def __init__(self, name: str):
        super().__init__(f"Unknown hash type name: {name}")
        self.name = name


class UnknownHashLength(MidAuthError):
    def __init__(self, length: int):
        super().__init__(f"Unknown hash length: {length}")
        self.length = length


class MalformedChallenge(MidAuthError):
    pass


class MalformedCertificate(MidAuthError):
    pass


class InvalidSignatureEncoding(MidAuthError):
    pass


class UnsupportedKeyType(MidAuthError):
    def __init__(self, key_type: str):
        super().__init__(f"Unsupported public key type: {key_type}")
        self.key_type = key_type
