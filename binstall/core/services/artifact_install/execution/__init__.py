"""L4 Execution — stages that touch the network, the disk, or processes."""
