"""Subscription queues, topic options and master XML-RPC handling for CAN-bridged ROS nodes."""

__version__ = "0.1.0"