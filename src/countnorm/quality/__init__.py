"""Quality control transforms applied before normalization."""

from countnorm.quality.filtering import ZeroCountFilter, CountFilterResult

__all__ = ['ZeroCountFilter', 'CountFilterResult']
