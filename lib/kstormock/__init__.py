# __init__.py
#
# Dummy storage server and demo driver for kstorclient
