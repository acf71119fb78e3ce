"""qlight version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Initial release: list and set commands over hidapi
# 0.2.0 - Topology-path ordering for identical towers, --index selection,
#         --reset turns unspecified colors and the buzzer off
# 0.3.0 - Explicit HID context objects (hidapi or pyusb backend), config file,
#         setup-udev command, typed error hierarchy with exit codes
