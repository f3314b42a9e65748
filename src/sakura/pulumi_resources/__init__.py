import typing

# logical id -> the Pulumi resource, component or lookup result declared for it
RealizedResources = dict[str, typing.Any]
