"""Winner selection for contests and giveaways."""
