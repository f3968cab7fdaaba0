"""wgremote 测试包。Test package for wgremote."""
